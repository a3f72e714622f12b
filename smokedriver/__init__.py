"""
smokedriver - launch an application under test and drive it with Playwright.
"""
__version__ = "0.1.0"
