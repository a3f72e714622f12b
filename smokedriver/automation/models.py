"""
Automation data models: launch options, in-page query results and errors.
"""
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, List, Dict, Any


class SmokeDriverError(Exception):
    """Base class for harness errors."""


class ServerLaunchError(SmokeDriverError):
    """The launched process went away before printing its ready signal."""


class NotConnectedError(SmokeDriverError):
    """An operation needs a connection that has not been made yet."""


class BrowserType(Enum):
    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"


@dataclass
class ServerOptions:
    """How to launch the web server under test."""
    user_data_dir: str
    workspace_path: str
    extensions_path: str
    server_path: Optional[str] = field(
        default_factory=lambda: os.environ.get("VSCODE_REMOTE_SERVER_PATH") or None
    )
    verbose: bool = False
    root: str = field(default_factory=os.getcwd)

    @property
    def logs_path(self) -> Path:
        return Path(self.root) / ".build" / "logs" / "smoke-tests-browser"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_data_dir": self.user_data_dir,
            "workspace_path": self.workspace_path,
            "extensions_path": self.extensions_path,
            "server_path": self.server_path,
            "verbose": self.verbose,
            "root": self.root,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServerOptions":
        return cls(**data)


@dataclass
class BrowserOptions:
    """Which browser to attach to the running server."""
    browser: BrowserType = BrowserType.CHROMIUM
    headless: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "browser": self.browser.value,
            "headless": self.headless,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BrowserOptions":
        data = data.copy()
        if "browser" in data and isinstance(data["browser"], str):
            data["browser"] = BrowserType(data["browser"])
        return cls(**data)


@dataclass
class ElectronOptions:
    """How to launch the desktop build under test."""
    executable_path: str
    args: List[str] = field(default_factory=list)
    env: Optional[Dict[str, str]] = None
    root: str = field(default_factory=os.getcwd)

    @property
    def logs_path(self) -> Path:
        return Path(self.root) / ".build" / "logs" / "smoke-tests"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "executable_path": self.executable_path,
            "args": list(self.args),
            "env": dict(self.env) if self.env is not None else None,
            "root": self.root,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ElectronOptions":
        return cls(**data)


@dataclass
class Element:
    """A DOM element as reported by the in-page driver."""
    tag_name: str
    class_name: str = ""
    text_content: str = ""
    attributes: Dict[str, str] = field(default_factory=dict)
    children: List["Element"] = field(default_factory=list)
    top: float = 0
    left: float = 0

    def to_dict(self) -> dict:
        return {
            "tagName": self.tag_name,
            "className": self.class_name,
            "textContent": self.text_content,
            "attributes": dict(self.attributes),
            "children": [child.to_dict() for child in self.children],
            "top": self.top,
            "left": self.left,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Element":
        return cls(
            tag_name=data.get("tagName", ""),
            class_name=data.get("className") or "",
            text_content=data.get("textContent") or "",
            attributes=data.get("attributes") or {},
            children=[cls.from_dict(child) for child in data.get("children") or []],
            top=data.get("top", 0),
            left=data.get("left", 0),
        )


@dataclass
class ElementXY:
    x: float
    y: float

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ElementXY":
        return cls(x=data["x"], y=data["y"])


@dataclass
class LocaleInfo:
    language: str
    locale: Optional[str] = None

    def to_dict(self) -> dict:
        return {"language": self.language, "locale": self.locale}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LocaleInfo":
        return cls(language=data.get("language", ""), locale=data.get("locale"))


@dataclass
class LocalizedStrings:
    open: str
    close: str
    find: str

    def to_dict(self) -> dict:
        return {"open": self.open, "close": self.close, "find": self.find}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LocalizedStrings":
        return cls(open=data["open"], close=data["close"], find=data["find"])
