"""
PlaywrightDriver - remote control for a running application.

Every query is forwarded to the `window.driver` object the application
exposes when started with driver support enabled. Arguments travel as
evaluate arguments so selectors and text never need quoting.
"""
import asyncio
from pathlib import Path
from typing import Optional, Callable, Awaitable, Any, List

from ..logging_config import get_logger
from .keys import parse_keybinding
from .models import Element, ElementXY, LocaleInfo, LocalizedStrings

logger = get_logger("smokedriver.driver")

# Settle time between chords and after a full keybinding
KEY_SETTLE_SECONDS = 0.1


class PlaywrightDriver:
    """Drives one window of the application under test."""

    def __init__(
        self,
        context,
        page,
        logs_path: Path,
        next_trace_name: Callable[[], str],
        on_exit: Callable[[], Awaitable[None]],
    ):
        self.context = context
        self.page = page
        self.logs_path = Path(logs_path)
        self._next_trace_name = next_trace_name
        self._on_exit = on_exit

    async def _call(self, method: str, *args: Any) -> Any:
        if not args:
            return await self.page.evaluate(f"window.driver.{method}()")
        return await self.page.evaluate(
            f"(args) => window.driver.{method}(...args)", list(args)
        )

    # ==================== Lifecycle ====================

    async def wait_for_ready(self) -> None:
        await self._call("waitForReady")

    async def reload_window(self) -> None:
        await self._call("reloadWindow")

    async def exit_application(self) -> None:
        """Save the trace, ask the application to quit, then tear down."""
        trace_path = self.logs_path / self._next_trace_name()
        try:
            await self.context.tracing.stop(path=str(trace_path))
            logger.info_with("Saved playwright trace", path=str(trace_path))
        except Exception as e:
            logger.warning(f"Failed to stop playwright tracing: {e}")

        try:
            await self._call("exitApplication")
        except Exception as e:
            # The window usually goes away while the call is in flight
            logger.warning(f"Application exit request failed: {e}")

        await self._on_exit()

    # ==================== Input ====================

    async def dispatch_keybinding(self, keybinding: str) -> None:
        for index, chord in enumerate(parse_keybinding(keybinding)):
            if index > 0:
                await asyncio.sleep(KEY_SETTLE_SECONDS)

            keys_down: List[str] = []
            for key in chord:
                await self.page.keyboard.down(key)
                keys_down.append(key)

            while keys_down:
                await self.page.keyboard.up(keys_down.pop())

        await asyncio.sleep(KEY_SETTLE_SECONDS)

    async def click(self, selector: str, xoffset: Optional[float] = None, yoffset: Optional[float] = None) -> None:
        """Click an element, optionally at an offset from its top-left corner.

        The offsets are applied once, by the in-page `getElementXY`. Callers
        that compensated for offsets being added a second time after the
        lookup must halve them.
        """
        position = await self.get_element_xy(selector, xoffset, yoffset)
        await self.page.mouse.click(position.x, position.y)

    async def double_click(self, selector: str) -> None:
        position = await self.get_element_xy(selector)
        await self.page.mouse.dblclick(position.x, position.y)

    async def set_value(self, selector: str, text: str) -> None:
        await self._call("setValue", selector, text)

    async def type_in_editor(self, selector: str, text: str) -> None:
        await self._call("typeInEditor", selector, text)

    async def write_in_terminal(self, selector: str, text: str) -> None:
        await self._call("writeInTerminal", selector, text)

    # ==================== Queries ====================

    async def get_title(self) -> str:
        return await self._call("getTitle")

    async def is_active_element(self, selector: str) -> bool:
        return await self._call("isActiveElement", selector)

    async def get_elements(self, selector: str, recursive: bool = False) -> List[Element]:
        raw = await self._call("getElements", selector, recursive)
        return [Element.from_dict(item) for item in raw or []]

    async def get_element_xy(
        self, selector: str, xoffset: Optional[float] = None, yoffset: Optional[float] = None
    ) -> ElementXY:
        raw = await self._call("getElementXY", selector, xoffset, yoffset)
        return ElementXY.from_dict(raw)

    async def get_terminal_buffer(self, selector: str) -> List[str]:
        return await self._call("getTerminalBuffer", selector)

    async def get_locale_info(self) -> LocaleInfo:
        return LocaleInfo.from_dict(await self._call("getLocaleInfo"))

    async def get_localized_strings(self) -> LocalizedStrings:
        return LocalizedStrings.from_dict(await self._call("getLocalizedStrings"))
