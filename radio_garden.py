#!/usr/bin/env python3
"""
Radio Garden desktop shell implemented in Python with Qt (PySide6).

Wraps https://radio.garden in a native window that fades in and out,
remembers its bounds, lives in the system tray with a sleep timer,
drops requests to known ad/tracker hosts and only runs once per user.
The Chromium-backed view lives in radio_garden_web and is loaded when
the application starts.
"""

from __future__ import annotations

import argparse
import json
import math
import os
import re
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlsplit

from PySide6 import QtCore, QtGui, QtNetwork, QtWidgets  # LGPL-licensed Qt bindings


__version__ = "1.0.0"


# ===== Storage + resource helpers ==========================================


APP_NAME = "Radio Garden"
APP_ID = "radio-garden"
WINDOW_STATE_FILE = "window-state.json"


def get_resource_root() -> Path:
    """Return path that contains bundled resources (PyInstaller-safe)."""
    base = getattr(sys, "_MEIPASS", None)
    if base:
        return Path(base)
    return Path(__file__).resolve().parent


def preferred_storage_root() -> Path:
    """Per-user application data folder for the current platform."""
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        base = Path(appdata) if appdata else Path.home() / "AppData" / "Roaming"
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        xdg_config = os.environ.get("XDG_CONFIG_HOME")
        base = Path(xdg_config) if xdg_config else Path.home() / ".config"
    return base / APP_NAME


def determine_storage_root(preferred: Optional[Path] = None) -> Path:
    """Ensure preferred storage directory exists, fallback to HOME if needed."""
    preferred = preferred or preferred_storage_root()
    try:
        preferred.mkdir(parents=True, exist_ok=True)
        return preferred
    except OSError as exc:
        fallback = Path.home() / f".{APP_ID}"
        fallback.mkdir(parents=True, exist_ok=True)
        print(f"[{APP_NAME}] Warning: {exc}. Falling back to {fallback}", file=sys.stderr)
        return fallback


RESOURCE_ROOT = get_resource_root()


# ===== Utility helpers ======================================================


def create_fallback_pixmap(size: int = 64) -> QtGui.QPixmap:
    """Draw a simple green globe when no icon file is bundled."""
    pixmap = QtGui.QPixmap(size, size)
    pixmap.fill(QtCore.Qt.transparent)

    painter = QtGui.QPainter(pixmap)
    painter.setRenderHint(QtGui.QPainter.Antialiasing)

    gradient = QtGui.QRadialGradient(size * 0.35, size * 0.35, size * 0.7)
    gradient.setColorAt(0.0, QtGui.QColor(122, 232, 140))
    gradient.setColorAt(1.0, QtGui.QColor(28, 138, 72))

    globe = QtCore.QRectF(size * 0.06, size * 0.06, size * 0.88, size * 0.88)
    pen = QtGui.QPen(QtGui.QColor(14, 68, 36), max(1.0, size / 32))
    pen.setCosmetic(True)
    painter.setPen(pen)
    painter.setBrush(gradient)
    painter.drawEllipse(globe)

    painter.setBrush(QtCore.Qt.NoBrush)
    painter.drawEllipse(globe.adjusted(size * 0.24, 0, -size * 0.24, 0))
    center_y = globe.center().y()
    painter.drawLine(QtCore.QPointF(globe.left(), center_y), QtCore.QPointF(globe.right(), center_y))
    painter.end()

    return pixmap


def load_app_icon() -> QtGui.QIcon:
    for name in ("icon.png", "icon.ico"):
        path = RESOURCE_ROOT / name
        if path.exists():
            icon = QtGui.QIcon(str(path))
            if not icon.isNull():
                return icon
    return QtGui.QIcon(create_fallback_pixmap())


def parse_minutes(text: str, maximum: Optional[int] = None) -> Optional[int]:
    """Parse user input into a positive minute count, or None if unusable."""
    try:
        value = int(text.strip())
    except (AttributeError, ValueError):
        return None
    if value <= 0:
        return None
    if maximum is not None and value > maximum:
        return None
    return value


def parse_version(text: str) -> Tuple[int, ...]:
    core = text.strip().lstrip("vV").split("-", 1)[0]
    return tuple(int(part) for part in re.findall(r"\d+", core))


def is_newer_version(candidate: str, current: str) -> bool:
    """Compare dotted release versions, tolerating a leading "v"."""
    candidate_parts = parse_version(candidate)
    current_parts = parse_version(current)
    if not candidate_parts:
        return False
    width = max(len(candidate_parts), len(current_parts))
    candidate_parts += (0,) * (width - len(candidate_parts))
    current_parts += (0,) * (width - len(current_parts))
    return candidate_parts > current_parts


def is_same_origin(url: str, origin_url: str) -> bool:
    try:
        target = urlsplit(url)
        origin = urlsplit(origin_url)
        return (
            target.scheme.lower() == origin.scheme.lower()
            and target.hostname == origin.hostname
            and target.port == origin.port
        )
    except ValueError:
        return False


# ===== Page integration scripts ============================================


STYLE_ELEMENT_ID = "radio-garden-desktop-style"


def style_injection_script(css: str) -> str:
    """JavaScript that (re)applies the desktop stylesheet override."""
    return (
        "(function () {"
        f" var style = document.getElementById({json.dumps(STYLE_ELEMENT_ID)});"
        " if (!style) {"
        "  style = document.createElement('style');"
        f"  style.id = {json.dumps(STYLE_ELEMENT_ID)};"
        "  (document.head || document.documentElement).appendChild(style);"
        " }"
        f" style.textContent = {json.dumps(css)};"
        "})();"
    )


def favorites_shortcut_script(key: str) -> str:
    """JavaScript keydown hook that clicks the page's favourites tab.

    The lookup is a heuristic against markup we do not control, so a miss
    (or any DOM error) silently does nothing.
    """
    return (
        "(function () {"
        " document.addEventListener('keydown', function (event) {"
        f"  if (event.key !== {json.dumps(key)}) return;"
        "  if (event.ctrlKey || event.altKey || event.metaKey || event.shiftKey) return;"
        "  var active = document.activeElement;"
        "  var tag = active && active.tagName;"
        "  if (tag === 'INPUT' || tag === 'TEXTAREA' || (active && active.isContentEditable)) return;"
        "  try {"
        "   var candidates = document.querySelectorAll('nav a, [role=tab], .nav__item');"
        "   var target = Array.prototype.find.call(candidates, function (el) {"
        "    return el.innerText && el.innerText.trim().toLowerCase().indexOf('favor') !== -1;"
        "   });"
        "   if (target) target.click();"
        "  } catch (err) {}"
        " }, true);"
        "})();"
    )


# ===== Configuration ========================================================


DEFAULT_URL = "https://radio.garden"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120 Safari/537.36"
)
DEFAULT_PAGE_STYLE = "body { overflow: hidden; border-radius: 12px; }"
UPDATE_FEED_URL = "https://api.github.com/repos/chillzaurus/radio-garden-app/releases/latest"
MAX_PROMPT_MINUTES = 600

GPU_FLAGS = [
    "--ignore-gpu-blocklist",
    "--enable-webgl",
    "--enable-gpu-rasterization",
    "--enable-zero-copy",
]

DEFAULT_BLOCKLIST: Tuple[str, ...] = (
    "*://googleads.g.doubleclick.net/*",
    "*://pubads.g.doubleclick.net/*",
    "*://securepubads.g.doubleclick.net/*",
    "*://pagead2.googlesyndication.com/*",
    "*://adservice.google.com/*",
    "*://adservice.google.ro/*",
    "*://*.googlesyndication.com/*",
    "*://*.doubleclick.net/*",
    "*://*.addthis.com/*",
    "*://*.adnxs.com/*",
    "*://*.moatads.com/*",
    "*://*.amazon-adsystem.com/*",
    "*://*.outbrain.com/*",
    "*://*.taboola.com/*",
    "*://*.advertising.com/*",
    "*://ads.pubmatic.com/*",
    "*://*.criteo.com/*",
    "*://*.rubiconproject.com/*",
    "*://*.openx.net/*",
    "*://*.adsrvr.org/*",
    "*://*.casalemedia.com/*",
    "*://*.smartadserver.com/*",
    "*://*.adsafeprotected.com/*",
    "*://scdn.cxense.com/*",
    "*://*.cxense.com/*",
)


@dataclass
class AppConfig:
    url: str = DEFAULT_URL
    user_agent: str = DEFAULT_USER_AGENT
    page_style: str = DEFAULT_PAGE_STYLE
    window_title: str = APP_NAME
    background_color: str = "#121212"

    reload_hotkey: str = "<ctrl>+r"
    favorites_key: str = "f"

    sleep_presets: List[int] = field(default_factory=lambda: [5, 15, 30, 60, 90])
    sleep_refresh_ms: int = 30 * 1000            # tray label refresh
    fade_step: float = 0.05
    fade_interval_ms: int = 10

    blocklist: Tuple[str, ...] = DEFAULT_BLOCKLIST
    update_check_enabled: bool = True
    update_feed_url: str = UPDATE_FEED_URL
    hardware_acceleration: bool = True
    initial_sleep_minutes: Optional[int] = None
    storage_dir: Optional[Path] = None


@dataclass
class AppContext:
    """Process-wide mutable state, created at startup and shared by the shell."""

    config: AppConfig
    version: str = __version__
    always_on_top: bool = False
    quitting: bool = False


def chromium_flags(config: AppConfig, existing: str = "") -> str:
    """Merge the web-engine switches for this config into an existing flag string."""
    flags = existing.split()
    wanted = GPU_FLAGS if config.hardware_acceleration else ["--disable-gpu"]
    for flag in wanted:
        if flag not in flags:
            flags.append(flag)
    return " ".join(flags)


# ===== Window state persistence ============================================


@dataclass
class WindowGeometry:
    width: int = 420
    height: int = 800
    x: Optional[int] = None
    y: Optional[int] = None

    def to_dict(self) -> Dict[str, int]:
        data = {"width": self.width, "height": self.height}
        if self.x is not None:
            data["x"] = self.x
        if self.y is not None:
            data["y"] = self.y
        return data

    @classmethod
    def from_dict(cls, data: object) -> "WindowGeometry":
        geometry = cls()
        if not isinstance(data, dict):
            return geometry

        def get_int(key: str, default: Optional[int]) -> Optional[int]:
            value = data.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except (TypeError, ValueError):
                return default

        geometry.width = get_int("width", geometry.width)
        geometry.height = get_int("height", geometry.height)
        geometry.x = get_int("x", None)
        geometry.y = get_int("y", None)
        return geometry

    @classmethod
    def from_rect(cls, rect: QtCore.QRect) -> "WindowGeometry":
        return cls(width=rect.width(), height=rect.height(), x=rect.x(), y=rect.y())


class WindowStateStore:
    """Write-through JSON record of the main window bounds."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._write_failed = False

    def load(self) -> WindowGeometry:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return WindowGeometry()
        except (OSError, ValueError) as exc:
            print(f"[{APP_NAME}] Ignoring unreadable window state {self.path}: {exc}", file=sys.stderr)
            return WindowGeometry()
        return WindowGeometry.from_dict(data)

    def save(self, geometry: WindowGeometry) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(geometry.to_dict()), encoding="utf-8")
        except OSError as exc:
            # Reported once per failure streak; moves fire this many times a second.
            if not self._write_failed:
                print(f"[{APP_NAME}] Failed to save window state: {exc}", file=sys.stderr)
            self._write_failed = True
            return
        self._write_failed = False


# ===== Request filtering ====================================================


WILDCARD_SCHEMES = ("http", "https", "ws", "wss")


@dataclass(frozen=True)
class MatchPattern:
    """One ``scheme://host/path`` pattern in browser-extension syntax."""

    source: str
    scheme: str
    host: str
    path: "re.Pattern[str]"

    @classmethod
    def parse(cls, pattern: str) -> "MatchPattern":
        scheme, separator, rest = pattern.partition("://")
        host, _, path = rest.partition("/")
        if not separator or not scheme or not host:
            raise ValueError(f"Not a URL match pattern: {pattern!r}")
        regex = ".*".join(re.escape(chunk) for chunk in f"/{path}".split("*"))
        return cls(pattern, scheme.lower(), host.lower(), re.compile(regex, re.DOTALL))

    def matches(self, scheme: str, host: str, path: str) -> bool:
        if self.scheme == "*":
            if scheme not in WILDCARD_SCHEMES:
                return False
        elif scheme != self.scheme:
            return False

        if self.host.startswith("*."):
            domain = self.host[2:]
            if host != domain and not host.endswith("." + domain):
                return False
        elif self.host != "*" and host != self.host:
            return False

        return self.path.fullmatch(path) is not None


class RequestFilter:
    """Static blocklist applied to every request the page issues."""

    def __init__(self, patterns: Iterable[str]) -> None:
        self.patterns: Tuple[str, ...] = tuple(patterns)
        self._compiled: Tuple[MatchPattern, ...] = tuple(MatchPattern.parse(p) for p in self.patterns)

    def should_block(self, url: str) -> bool:
        try:
            parts = urlsplit(url)
            host = (parts.hostname or "").lower()
        except ValueError:
            return False
        path = parts.path or "/"
        if parts.query:
            path = f"{path}?{parts.query}"
        scheme = parts.scheme.lower()
        return any(pattern.matches(scheme, host, path) for pattern in self._compiled)


# ===== Visibility + fade ====================================================


class VisibilityState(Enum):
    HIDDEN = "hidden"
    FADING_IN = "fading_in"
    VISIBLE = "visible"
    FADING_OUT = "fading_out"


class VisibilityController(QtCore.QObject):
    """Fades the main window in and out in fixed opacity steps.

    A single repeating timer drives both directions, so starting a fade
    always replaces whatever fade was in flight.
    """

    visibilityChanged = QtCore.Signal(bool)

    def __init__(self, window: QtWidgets.QWidget, step: float = 0.05, interval_ms: int = 10,
                 parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self.window = window
        self.step = step
        self.opacity = 1.0
        self.state = VisibilityState.VISIBLE if window.isVisible() else VisibilityState.HIDDEN

        self.fade_timer = QtCore.QTimer(self)
        self.fade_timer.setInterval(interval_ms)
        self.fade_timer.timeout.connect(self.advance_fade)

    @property
    def is_visible(self) -> bool:
        return self.state in (VisibilityState.FADING_IN, VisibilityState.VISIBLE)

    def show(self) -> None:
        if self.state is VisibilityState.HIDDEN:
            self._set_opacity(0.0)
            self.window.show()
        elif self.state is not VisibilityState.FADING_OUT:
            return
        self.state = VisibilityState.FADING_IN
        self.fade_timer.start()

    def hide(self) -> None:
        if not self.is_visible:
            return
        self.state = VisibilityState.FADING_OUT
        self.fade_timer.start()

    def toggle(self) -> None:
        if self.is_visible:
            self.hide()
        else:
            self.show()

    def bring_to_front(self) -> None:
        self.show()
        # A minimised window still counts as visible, so show() leaves it alone.
        if self.window.isMinimized():
            self.window.showNormal()
        self.window.raise_()
        self.window.activateWindow()

    def advance_fade(self) -> None:
        if self.state is VisibilityState.FADING_IN:
            self._set_opacity(self.opacity + self.step)
            if self.opacity >= 1.0:
                self.fade_timer.stop()
                self.state = VisibilityState.VISIBLE
                self.visibilityChanged.emit(True)
        elif self.state is VisibilityState.FADING_OUT:
            self._set_opacity(self.opacity - self.step)
            if self.opacity <= 0.0:
                self.fade_timer.stop()
                self.window.hide()
                self._set_opacity(1.0)
                self.state = VisibilityState.HIDDEN
                self.visibilityChanged.emit(False)
        else:
            self.fade_timer.stop()

    def _set_opacity(self, value: float) -> None:
        self.opacity = min(1.0, max(0.0, round(value, 4)))
        self.window.setWindowOpacity(self.opacity)


# ===== Sleep timer ==========================================================


MAX_SLEEP_MINUTES = (2 ** 31 - 1) // 60000  # QTimer intervals are signed 32-bit ms


class SleepTimer(QtCore.QObject):
    """Single optional countdown that ends the application."""

    changed = QtCore.Signal()
    expired = QtCore.Signal()

    def __init__(self, refresh_interval_ms: int = 30 * 1000,
                 parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self._end_ms: Optional[int] = None

        self.countdown = QtCore.QTimer(self)
        self.countdown.setSingleShot(True)
        self.countdown.timeout.connect(self._on_expired)

        self.refresh_timer = QtCore.QTimer(self)
        self.refresh_timer.setInterval(refresh_interval_ms)
        self.refresh_timer.timeout.connect(self.changed)

    @property
    def active(self) -> bool:
        return self.countdown.isActive()

    @property
    def end_timestamp(self) -> Optional[int]:
        """Epoch milliseconds at which the app quits, or None."""
        return self._end_ms if self.active else None

    def set(self, minutes: int) -> None:
        if minutes <= 0 or minutes > MAX_SLEEP_MINUTES:
            raise ValueError(f"Sleep timer needs 1-{MAX_SLEEP_MINUTES} minutes, got {minutes}")
        self._stop_timers()
        duration_ms = int(minutes) * 60 * 1000
        self._end_ms = QtCore.QDateTime.currentMSecsSinceEpoch() + duration_ms
        self.countdown.start(duration_ms)
        self.refresh_timer.start()
        self.changed.emit()

    def clear(self) -> None:
        if not self.active and self._end_ms is None:
            return
        self._stop_timers()
        self.changed.emit()

    def remaining_minutes(self) -> Optional[int]:
        if not self.active or self._end_ms is None:
            return None
        remaining_ms = self._end_ms - QtCore.QDateTime.currentMSecsSinceEpoch()
        return max(1, math.ceil(remaining_ms / 60000))

    def _stop_timers(self) -> None:
        self.countdown.stop()
        self.refresh_timer.stop()
        self._end_ms = None

    def _on_expired(self) -> None:
        self._stop_timers()
        self.changed.emit()
        self.expired.emit()


# ===== Custom duration prompt ==============================================


class PromptDialog(QtWidgets.QDialog):
    """Asks for a custom sleep-timer duration and reports it exactly once."""

    resultReady = QtCore.Signal(object)

    def __init__(self, parent: Optional[QtWidgets.QWidget] = None) -> None:
        super().__init__(parent)
        self.setWindowTitle("Sleep Timer")
        self.setWindowFlag(QtCore.Qt.WindowStaysOnTopHint)
        self.setWindowFlag(QtCore.Qt.WindowContextHelpButtonHint, False)
        self.setAttribute(QtCore.Qt.WA_DeleteOnClose)
        self.setFixedSize(360, 210)
        self.setStyleSheet(
            """
            QDialog {
                background-color: #181818;
                color: #E0E0E0;
            }
            QLabel {
                color: #888888;
                font-size: 12px;
                letter-spacing: 1px;
            }
            QLineEdit {
                background-color: #242424;
                border: 1px solid #333333;
                border-radius: 8px;
                padding: 9px 14px;
                color: #FFFFFF;
                font-size: 13px;
            }
            QLineEdit:focus {
                border-color: #4CAF50;
            }
            QPushButton {
                border-radius: 8px;
                padding: 9px 0;
                font-size: 13px;
                font-weight: 600;
            }
            QPushButton#okButton {
                background-color: #4CAF50;
                color: #FFFFFF;
            }
            QPushButton#cancelButton {
                background-color: #2E2E2E;
                color: #BBBBBB;
                border: 1px solid #383838;
            }
            """
        )

        self._value: Optional[int] = None
        self._delivered = False

        label = QtWidgets.QLabel("HOW LONG DO YOU WANT THE RADIO TO PLAY?")

        self.input = QtWidgets.QLineEdit()
        self.input.setPlaceholderText("(in minutes)")
        self.input.setAlignment(QtCore.Qt.AlignCenter)
        self.input.setValidator(QtGui.QIntValidator(1, MAX_PROMPT_MINUTES, self))
        self.input.returnPressed.connect(self.submit)

        self.ok_button = QtWidgets.QPushButton("Set Timer")
        self.ok_button.setObjectName("okButton")
        self.ok_button.setAutoDefault(False)
        self.ok_button.clicked.connect(self.submit)

        self.cancel_button = QtWidgets.QPushButton("Cancel")
        self.cancel_button.setObjectName("cancelButton")
        self.cancel_button.setAutoDefault(False)
        self.cancel_button.clicked.connect(self.reject)

        buttons = QtWidgets.QHBoxLayout()
        buttons.setSpacing(8)
        buttons.addWidget(self.ok_button)
        buttons.addWidget(self.cancel_button)

        layout = QtWidgets.QVBoxLayout(self)
        layout.setContentsMargins(24, 28, 24, 28)
        layout.setSpacing(14)
        layout.addWidget(label)
        layout.addWidget(self.input)
        layout.addLayout(buttons)

        self.input.setFocus()

    def submit(self) -> None:
        value = parse_minutes(self.input.text(), MAX_PROMPT_MINUTES)
        if value is None:
            return
        self._value = value
        self.accept()

    def done(self, result: int) -> None:  # type: ignore[override]
        # accept(), reject(), Escape and the title-bar close button all land here.
        if not self._delivered:
            self._delivered = True
            self.resultReady.emit(self._value)
        super().done(result)


# ===== Single instance ======================================================


ACTIVATE_COMMAND = b"activate"


def user_token() -> str:
    name = os.environ.get("USER") or os.environ.get("USERNAME") or "user"
    return re.sub(r"[^A-Za-z0-9_.-]", "_", name)


class SingleInstanceGate(QtCore.QObject):
    """Per-user lock file plus a local socket that forwards duplicate launches."""

    activationRequested = QtCore.Signal()

    def __init__(self, key: str, lock_dir: Path, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self.key = key
        self.server_name = f"{key}-{user_token()}"
        self.lock = QtCore.QLockFile(str(lock_dir / f"{key}.lock"))
        self.lock.setStaleLockTime(0)  # only a dead owner PID makes the lock stale
        self.server: Optional[QtNetwork.QLocalServer] = None
        self.acquired = False

    def acquire(self) -> bool:
        if self.acquired:
            return True
        if not self.lock.tryLock(0):
            self.notify_running_instance()
            return False
        self.acquired = True

        QtNetwork.QLocalServer.removeServer(self.server_name)
        self.server = QtNetwork.QLocalServer(self)
        self.server.newConnection.connect(self._on_new_connection)
        if not self.server.listen(self.server_name):
            print(
                f"[{APP_NAME}] Could not listen on {self.server_name}: {self.server.errorString()}",
                file=sys.stderr,
            )
        return True

    def notify_running_instance(self, timeout_ms: int = 500) -> bool:
        socket = QtNetwork.QLocalSocket()
        socket.connectToServer(self.server_name)
        if not socket.waitForConnected(timeout_ms):
            return False
        socket.write(ACTIVATE_COMMAND + b"\n")
        socket.waitForBytesWritten(timeout_ms)
        socket.disconnectFromServer()
        return True

    def release(self) -> None:
        if self.server is not None:
            self.server.close()
            self.server = None
        if self.acquired:
            self.lock.unlock()
            self.acquired = False

    def _on_new_connection(self) -> None:
        while self.server is not None and self.server.hasPendingConnections():
            socket = self.server.nextPendingConnection()
            socket.readyRead.connect(lambda s=socket: self._read_commands(s))
            socket.disconnected.connect(socket.deleteLater)
            if socket.bytesAvailable():
                self._read_commands(socket)

    def _read_commands(self, socket: QtNetwork.QLocalSocket) -> None:
        while socket.canReadLine():
            if socket.readLine().data().strip() == ACTIVATE_COMMAND:
                self.activationRequested.emit()


# ===== Global shortcut ======================================================


class GlobalShortcut(QtCore.QObject):
    """System-wide hotkey delivered as a Qt signal on the GUI thread."""

    activated = QtCore.Signal()

    def __init__(self, hotkey: str, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self.hotkey = hotkey
        self.listener = None

    def start(self) -> bool:
        if self.listener is not None:
            return True
        try:
            # pynput picks its input backend on import and fails there without a display.
            from pynput import keyboard

            listener = keyboard.GlobalHotKeys({self.hotkey: self.activated.emit})
            listener.start()
        except Exception as exc:
            print(f"[{APP_NAME}] Global shortcut {self.hotkey} unavailable: {exc}", file=sys.stderr)
            return False
        self.listener = listener
        return True

    def stop(self) -> None:
        if self.listener is not None:
            self.listener.stop()
            self.listener = None


# ===== Update check =========================================================


def parse_release_payload(payload: bytes) -> Optional[Tuple[str, str]]:
    """Extract (version, page url) from a GitHub "latest release" response."""
    try:
        data = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return None
    if not isinstance(data, dict) or data.get("draft") or data.get("prerelease"):
        return None
    tag = data.get("tag_name")
    if not isinstance(tag, str) or not parse_version(tag):
        return None
    return tag.strip().lstrip("vV"), str(data.get("html_url") or "")


class UpdateChecker(QtCore.QObject):
    """Fire-and-forget release feed check; every failure is ignored."""

    updateAvailable = QtCore.Signal(str, str)

    def __init__(self, feed_url: str, current_version: str,
                 parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self.feed_url = feed_url
        self.current_version = current_version
        self.network = QtNetwork.QNetworkAccessManager(self)

    def check(self) -> None:
        request = QtNetwork.QNetworkRequest(QtCore.QUrl(self.feed_url))
        request.setRawHeader(b"Accept", b"application/vnd.github+json")
        request.setRawHeader(b"User-Agent", f"{APP_ID}/{self.current_version}".encode("utf-8"))
        reply = self.network.get(request)
        reply.finished.connect(lambda: self.handle_reply(reply))

    def handle_reply(self, reply: QtNetwork.QNetworkReply) -> None:
        try:
            if reply.error() != QtNetwork.QNetworkReply.NetworkError.NoError:
                return
            release = parse_release_payload(reply.readAll().data())
        finally:
            reply.deleteLater()
        if release and is_newer_version(release[0], self.current_version):
            self.updateAvailable.emit(*release)


# ===== Mini player bridge ===================================================


class MiniPlayerBridge(QtCore.QObject):
    """Command surface for a compact player window.

    Nothing in the main window uses it yet; it only fixes the contract:
    four commands out, one state push in.
    """

    commandReceived = QtCore.Signal(str)
    updateReceived = QtCore.Signal(dict)

    @QtCore.Slot()
    def playpause(self) -> None:
        self.commandReceived.emit("playpause")

    @QtCore.Slot()
    def prev(self) -> None:
        self.commandReceived.emit("prev")

    @QtCore.Slot()
    def next(self) -> None:
        self.commandReceived.emit("next")

    @QtCore.Slot()
    def close(self) -> None:
        self.commandReceived.emit("close")

    def push_update(self, data: Dict[str, object]) -> None:
        self.updateReceived.emit(dict(data))


# ===== System tray integration =============================================


def sleep_timer_label(remaining_minutes: Optional[int]) -> str:
    if remaining_minutes is None:
        return "Sleep Timer"
    return f"Sleep Timer ({remaining_minutes} min left)"


class TrayPresenter(QtCore.QObject):
    """System-tray icon whose menu is rebuilt from scratch on every state change."""

    customSleepRequested = QtCore.Signal()
    alwaysOnTopToggled = QtCore.Signal(bool)
    quitRequested = QtCore.Signal()

    def __init__(self, context: AppContext, sleep_timer: SleepTimer,
                 visibility: VisibilityController, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self.context = context
        self.sleep_timer = sleep_timer
        self.visibility = visibility
        self.menu: Optional[QtWidgets.QMenu] = None

        self.tray = QtWidgets.QSystemTrayIcon(load_app_icon(), self)
        self.tray.setToolTip(APP_NAME)
        self.tray.activated.connect(self._on_activated)

        self.sleep_timer.changed.connect(self.rebuild_menu)
        self.visibility.visibilityChanged.connect(lambda _visible: self.rebuild_menu())

    def build_menu(self) -> QtWidgets.QMenu:
        menu = QtWidgets.QMenu()

        version_action = menu.addAction(f"v{self.context.version}")
        version_action.setEnabled(False)
        menu.addSeparator()

        open_action = menu.addAction(f"Open {APP_NAME}")
        open_action.triggered.connect(self.visibility.bring_to_front)
        menu.addSeparator()

        remaining = self.sleep_timer.remaining_minutes()
        sleep_menu = menu.addMenu(sleep_timer_label(remaining))
        if remaining is None:
            for minutes in self.context.config.sleep_presets:
                preset_action = sleep_menu.addAction(f"{minutes} minutes")
                preset_action.triggered.connect(lambda checked=False, m=minutes: self.sleep_timer.set(m))
            other_action = sleep_menu.addAction("Other…")
            other_action.triggered.connect(self.customSleepRequested)
        else:
            cancel_action = sleep_menu.addAction("Cancel Sleep Timer")
            cancel_action.triggered.connect(self.sleep_timer.clear)

        options_menu = menu.addMenu("Options")
        on_top_action = options_menu.addAction("Always on Top")
        on_top_action.setCheckable(True)
        on_top_action.setChecked(self.context.always_on_top)
        on_top_action.triggered.connect(self.alwaysOnTopToggled)
        menu.addSeparator()

        quit_action = menu.addAction("Quit")
        quit_action.triggered.connect(self.quitRequested)
        return menu

    def rebuild_menu(self) -> QtWidgets.QMenu:
        menu = self.build_menu()
        previous, self.menu = self.menu, menu
        self.tray.setContextMenu(menu)
        if previous is not None:
            previous.deleteLater()

        remaining = self.sleep_timer.remaining_minutes()
        if remaining is None:
            self.tray.setToolTip(APP_NAME)
        else:
            self.tray.setToolTip(f"{APP_NAME} (sleeps in {remaining} min)")
        return menu

    def show(self) -> None:
        self.tray.show()

    def hide(self) -> None:
        self.tray.hide()

    def _on_activated(self, reason: QtWidgets.QSystemTrayIcon.ActivationReason) -> None:
        if reason == QtWidgets.QSystemTrayIcon.ActivationReason.Trigger:
            self.visibility.toggle()


# ===== Main window ==========================================================


class ShellWindow(QtWidgets.QMainWindow):
    """Top-level window; saves its bounds on every change and hides instead of closing."""

    closeRequested = QtCore.Signal()

    def __init__(self, context: AppContext, store: WindowStateStore,
                 parent: Optional[QtWidgets.QWidget] = None) -> None:
        super().__init__(parent)
        self.context = context
        self.store = store

        self.setWindowTitle(context.config.window_title)
        self.setWindowIcon(load_app_icon())
        self.setStyleSheet(f"QMainWindow {{ background-color: {context.config.background_color}; }}")

    def restore_geometry(self, geometry: WindowGeometry) -> None:
        if geometry.x is None or geometry.y is None:
            self.resize(geometry.width, geometry.height)
        else:
            self.setGeometry(geometry.x, geometry.y, geometry.width, geometry.height)

    def current_geometry(self) -> WindowGeometry:
        return WindowGeometry.from_rect(self.geometry())

    def reload_content(self) -> None:
        content = self.centralWidget()
        if content is not None and hasattr(content, "reload"):
            content.reload()

    def set_always_on_top(self, enabled: bool) -> None:
        # Changing window flags re-creates the native window, which hides it.
        was_visible = self.isVisible()
        self.setWindowFlag(QtCore.Qt.WindowStaysOnTopHint, enabled)
        if was_visible:
            self.show()

    def moveEvent(self, event: QtGui.QMoveEvent) -> None:  # type: ignore[override]
        super().moveEvent(event)
        self.store.save(self.current_geometry())

    def resizeEvent(self, event: QtGui.QResizeEvent) -> None:  # type: ignore[override]
        super().resizeEvent(event)
        self.store.save(self.current_geometry())

    def closeEvent(self, event: QtGui.QCloseEvent) -> None:  # type: ignore[override]
        if self.context.quitting:
            event.accept()
            return
        event.ignore()
        self.closeRequested.emit()


# ===== Application wiring ===================================================


class Shell(QtCore.QObject):
    """Builds the window, tray, sleep timer and shortcuts and connects them."""

    def __init__(self, context: AppContext, store: WindowStateStore, *,
                 content: Optional[QtWidgets.QWidget] = None,
                 gate: Optional[SingleInstanceGate] = None,
                 on_quit: Optional[Callable[[], None]] = None,
                 parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        config = context.config
        self.context = context
        self.store = store
        self.gate = gate
        self.on_quit = on_quit or QtWidgets.QApplication.quit
        self.prompt: Optional[PromptDialog] = None
        self.update_box: Optional[QtWidgets.QMessageBox] = None

        self.window = ShellWindow(context, store)
        if content is not None:
            self.window.setCentralWidget(content)

        self.visibility = VisibilityController(self.window, config.fade_step, config.fade_interval_ms, self)
        self.sleep_timer = SleepTimer(config.sleep_refresh_ms, self)
        self.tray = TrayPresenter(context, self.sleep_timer, self.visibility, self)
        self.shortcut = GlobalShortcut(config.reload_hotkey, self)
        self.updates = UpdateChecker(config.update_feed_url, context.version, self)

        self.window.closeRequested.connect(self.visibility.hide)
        self.sleep_timer.expired.connect(self.quit)
        self.tray.customSleepRequested.connect(self.open_sleep_prompt)
        self.tray.alwaysOnTopToggled.connect(self.set_always_on_top)
        self.tray.quitRequested.connect(self.quit)
        self.shortcut.activated.connect(self.window.reload_content)
        self.updates.updateAvailable.connect(self.notify_update)
        if gate is not None:
            gate.activationRequested.connect(self.visibility.bring_to_front)

    def start(self) -> None:
        config = self.context.config
        self.window.restore_geometry(self.store.load())
        self.tray.rebuild_menu()
        self.tray.show()
        self.visibility.show()
        self.shortcut.start()
        if config.update_check_enabled:
            self.updates.check()
        if config.initial_sleep_minutes:
            self.sleep_timer.set(config.initial_sleep_minutes)

    def set_always_on_top(self, enabled: bool) -> None:
        self.context.always_on_top = bool(enabled)
        self.window.set_always_on_top(self.context.always_on_top)
        self.tray.rebuild_menu()

    def open_sleep_prompt(self) -> None:
        if self.prompt is not None:
            self.prompt.raise_()
            self.prompt.activateWindow()
            return
        prompt = PromptDialog()
        prompt.resultReady.connect(self._on_prompt_result)
        self.prompt = prompt
        prompt.show()
        prompt.raise_()
        prompt.activateWindow()

    def _on_prompt_result(self, minutes: Optional[int]) -> None:
        self.prompt = None
        if minutes:
            self.sleep_timer.set(minutes)

    def notify_update(self, version: str, url: str) -> None:
        text = f"Version {version} is available."
        if url:
            text += f"\n\nDownload it from:\n{url}"
        box = QtWidgets.QMessageBox(
            QtWidgets.QMessageBox.Information, "Update available", text, QtWidgets.QMessageBox.Ok
        )
        box.setModal(False)
        box.setAttribute(QtCore.Qt.WA_DeleteOnClose)
        box.finished.connect(lambda _result: setattr(self, "update_box", None))
        self.update_box = box
        box.show()

    def quit(self) -> None:
        if self.context.quitting:
            return
        self.context.quitting = True
        self.sleep_timer.clear()
        self.shortcut.stop()
        self.tray.hide()
        if self.prompt is not None:
            self.prompt.reject()
        self.window.close()
        if self.gate is not None:
            self.gate.release()
        self.on_quit()


@dataclass
class PageSetup:
    """Everything the web view needs, resolved before radio_garden_web is imported."""

    url: str
    user_agent: str
    background_color: str
    style_script: str
    favorites_script: str
    profile_dir: Path
    request_filter: RequestFilter

    @classmethod
    def from_config(cls, config: AppConfig, storage_dir: Path) -> "PageSetup":
        return cls(
            url=config.url,
            user_agent=config.user_agent,
            background_color=config.background_color,
            style_script=style_injection_script(config.page_style),
            favorites_script=favorites_shortcut_script(config.favorites_key),
            profile_dir=storage_dir / "profile",
            request_filter=RequestFilter(config.blocklist),
        )

    def is_same_origin(self, url: str) -> bool:
        return is_same_origin(url, self.url)


class RadioGardenApplication(QtWidgets.QApplication):
    """Main application wrapper that owns the instance gate and the shell."""

    def __init__(self, argv: List[str], config: AppConfig) -> None:
        super().__init__(argv)
        self.setApplicationName(APP_NAME)
        self.setApplicationVersion(__version__)
        self.setQuitOnLastWindowClosed(False)

        self.config = config
        self.context = AppContext(config=config)
        self.storage_dir = config.storage_dir or determine_storage_root()
        self.gate = SingleInstanceGate(APP_ID, self.storage_dir)
        self.shell: Optional[Shell] = None

    def start(self) -> None:
        from radio_garden_web import RadioGardenView

        view = RadioGardenView(PageSetup.from_config(self.config, self.storage_dir))
        view.start()
        store = WindowStateStore(self.storage_dir / WINDOW_STATE_FILE)
        self.shell = Shell(self.context, store, content=view, gate=self.gate, on_quit=self.quit)
        self.shell.start()


# ===== CLI argument parsing ================================================


def prompt_minutes_type(value: str) -> int:
    minutes = parse_minutes(value, MAX_PROMPT_MINUTES)
    if minutes is None:
        raise argparse.ArgumentTypeError(f"expected 1-{MAX_PROMPT_MINUTES} minutes, got {value!r}")
    return minutes


def apply_cli_overrides(config: AppConfig, argv: List[str]) -> AppConfig:
    parser = argparse.ArgumentParser(description="Radio Garden in a desktop window with a tray icon.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--sleep", type=prompt_minutes_type, metavar="MINUTES",
                        help="Start with a sleep timer that quits after MINUTES (1-600).")
    parser.add_argument("--no-update-check", action="store_true", help="Skip the release feed check.")
    parser.add_argument("--disable-gpu", action="store_true",
                        help="Turn off hardware acceleration in the web view.")
    parser.add_argument("--data-dir", type=Path, help="Folder for window state and the instance lock.")

    args = parser.parse_args(argv)

    if args.sleep:
        config.initial_sleep_minutes = args.sleep
    if args.no_update_check:
        config.update_check_enabled = False
    if args.disable_gpu:
        config.hardware_acceleration = False
    if args.data_dir:
        config.storage_dir = args.data_dir.expanduser()

    return config


def main(argv: Optional[List[str]] = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    config = apply_cli_overrides(AppConfig(), argv)
    config.storage_dir = determine_storage_root(config.storage_dir)

    os.environ["QTWEBENGINE_CHROMIUM_FLAGS"] = chromium_flags(
        config, os.environ.get("QTWEBENGINE_CHROMIUM_FLAGS", "")
    )
    QtCore.QCoreApplication.setAttribute(QtCore.Qt.AA_ShareOpenGLContexts)

    app = RadioGardenApplication(sys.argv[:1], config)
    if not app.gate.acquire():
        print(f"[{APP_NAME}] Already running; brought the existing window forward.", file=sys.stderr)
        return 0
    app.start()
    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
