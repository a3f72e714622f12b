from setuptools import setup, find_packages

setup(
    name="smokedriver",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["main"],
    include_package_data=True,
    install_requires=[
        "playwright>=1.40.0",
        "click>=8.1.7",
        "rich>=13.7.0",
        "psutil>=5.9.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "smokedriver=main:cli",
        ],
    },
    python_requires=">=3.10",
    author="smokedriver",
    description="Launch an application under test and drive it with Playwright",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
