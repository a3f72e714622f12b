"""
Playwright automation for smoke tests.

Provides:
- Launching the web server under test and discovering its endpoint
- Attaching a browser, or a desktop build over CDP
- A driver for keyboard, mouse and in-page queries
- Best-effort teardown with Playwright tracing
"""
from .driver import PlaywrightDriver
from .keys import parse_keybinding
from .models import (
    BrowserOptions,
    BrowserType,
    ElectronOptions,
    Element,
    ElementXY,
    LocaleInfo,
    LocalizedStrings,
    NotConnectedError,
    ServerLaunchError,
    ServerOptions,
    SmokeDriverError,
)
from .session import AutomationSession, Connection, SessionClient

__all__ = [
    "AutomationSession",
    "BrowserOptions",
    "BrowserType",
    "Connection",
    "ElectronOptions",
    "Element",
    "ElementXY",
    "LocaleInfo",
    "LocalizedStrings",
    "NotConnectedError",
    "PlaywrightDriver",
    "ServerLaunchError",
    "ServerOptions",
    "SessionClient",
    "SmokeDriverError",
    "parse_keybinding",
]
