"""
QtWebEngine pieces of the Radio Garden shell: the page view, its on-disk
profile and the request interceptor that applies the blocklist.

radio_garden.main() imports this module only after the QApplication
exists and the Chromium flags have been exported. Everything the view
needs arrives in a PageSetup, so this module never imports radio_garden
at runtime.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Optional

from PySide6 import QtCore, QtGui, QtWidgets
from PySide6.QtWebEngineCore import (
    QWebEnginePage,
    QWebEngineProfile,
    QWebEngineScript,
    QWebEngineUrlRequestInfo,
    QWebEngineUrlRequestInterceptor,
)
from PySide6.QtWebEngineWidgets import QWebEngineView

if TYPE_CHECKING:
    from radio_garden import PageSetup, RequestFilter


PROFILE_NAME = "radio-garden"


def create_persistent_profile(profile_dir: Path, user_agent: str,
                              parent: Optional[QtCore.QObject] = None) -> QWebEngineProfile:
    """Named profile whose cookies, local storage and cache live under profile_dir."""
    storage_dir = profile_dir / "storage"
    cache_dir = profile_dir / "cache"
    for path in (storage_dir, cache_dir):
        path.mkdir(parents=True, exist_ok=True)

    # The default profile is off-the-record; only a named one persists.
    profile = QWebEngineProfile(PROFILE_NAME, parent)
    profile.setPersistentStoragePath(str(storage_dir))
    profile.setCachePath(str(cache_dir))
    profile.setPersistentCookiesPolicy(QWebEngineProfile.PersistentCookiesPolicy.AllowPersistentCookies)
    profile.setHttpCacheType(QWebEngineProfile.HttpCacheType.DiskHttpCache)
    profile.setHttpUserAgent(user_agent)
    return profile


class RequestFilterInterceptor(QWebEngineUrlRequestInterceptor):
    """Cancels outgoing requests whose URL matches the blocklist."""

    def __init__(self, request_filter: "RequestFilter", parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self.request_filter = request_filter

    def interceptRequest(self, info: QWebEngineUrlRequestInfo) -> None:  # type: ignore[override]
        if self.request_filter.should_block(info.requestUrl().toString()):
            info.block(True)


class ExternalLinkPage(QWebEnginePage):
    """Scratch page for target=_blank links; hands the URL to the system browser."""

    def acceptNavigationRequest(self, url: QtCore.QUrl, nav_type, is_main_frame: bool) -> bool:  # type: ignore[override]
        if url.scheme().lower() in ("http", "https", "mailto"):
            QtGui.QDesktopServices.openUrl(url)
        self.deleteLater()
        return False


class OriginLockedPage(QWebEnginePage):
    """Keeps the main frame on the configured origin; foreign link clicks open externally."""

    def __init__(self, setup: "PageSetup", profile: QWebEngineProfile,
                 parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(profile, parent)
        self.setup = setup

    def acceptNavigationRequest(self, url: QtCore.QUrl, nav_type, is_main_frame: bool) -> bool:  # type: ignore[override]
        if (
            is_main_frame
            and nav_type == QWebEnginePage.NavigationType.NavigationTypeLinkClicked
            and not self.setup.is_same_origin(url.toString())
        ):
            QtGui.QDesktopServices.openUrl(url)
            return False
        return super().acceptNavigationRequest(url, nav_type, is_main_frame)

    def createWindow(self, _type) -> QWebEnginePage:  # type: ignore[override]
        return ExternalLinkPage(self.profile(), self)


class RadioGardenView(QWebEngineView):
    """Renders the single remote page with the desktop user agent, filter and style."""

    def __init__(self, setup: "PageSetup", parent: Optional[QtWidgets.QWidget] = None) -> None:
        super().__init__(parent)
        self.setup = setup

        # Owned by the application so it outlives the page that uses it.
        self.web_profile = create_persistent_profile(
            setup.profile_dir, setup.user_agent, QtCore.QCoreApplication.instance()
        )
        self.interceptor = RequestFilterInterceptor(setup.request_filter, self.web_profile)
        self.web_profile.setUrlRequestInterceptor(self.interceptor)

        page = OriginLockedPage(setup, self.web_profile, self)
        page.setBackgroundColor(QtGui.QColor(setup.background_color))
        self.setPage(page)
        self._install_favorites_shortcut()

        self.loadFinished.connect(self._apply_page_style)

    def start(self) -> None:
        self.load(QtCore.QUrl(self.setup.url))

    def _install_favorites_shortcut(self) -> None:
        script = QWebEngineScript()
        script.setName("favorites-shortcut")
        script.setSourceCode(self.setup.favorites_script)
        script.setInjectionPoint(QWebEngineScript.InjectionPoint.DocumentReady)
        script.setWorldId(QWebEngineScript.ScriptWorldId.ApplicationWorld)
        script.setRunsOnSubFrames(False)
        self.page().scripts().insert(script)

    def _apply_page_style(self, ok: bool) -> None:
        if not ok:
            return
        self.page().runJavaScript(self.setup.style_script, QWebEngineScript.ScriptWorldId.ApplicationWorld)
