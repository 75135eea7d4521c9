"""
Human-like mouse interaction for the map canvas.

Features:
- Mouse movement in jittered intermediate steps
- Press-move-release drag gestures used to nudge the map viewport
- Clicks with a small random offset
- Human pause simulation (0.3-1.5s random)
- Fast mode for skipping all human simulation
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass
class HumanSimulatorConfig:
    """Configuration for human-like interaction simulation."""

    # Pause configuration
    min_pause_seconds: float = 0.3
    max_pause_seconds: float = 1.5

    # Click configuration
    pre_click_delay_ms: int = 100
    max_click_offset_px: int = 3  # Random offset added to click position

    # Mouse movement configuration
    mouse_move_steps: int = 10  # Number of intermediate steps in mouse movement
    mouse_move_jitter_px: int = 2  # Random jitter added to each step
    step_delay_seconds: float = 0.01

    # Drag configuration
    drag_steps: int = 15
    hold_before_drag_ms: int = 120

    # Mode flags
    fast_mode: bool = False  # Skip all human simulation when True


class HumanSimulator:
    """
    Simulates human-like mouse interactions against a Playwright page.

    Usage:
        simulator = HumanSimulator()

        # Drag the map 120px to the left
        await simulator.drag(page, dx=-120, dy=0)

        # Click with mouse movement
        await simulator.click_element(page, "button#widget-zoom-out")

        # Add a thinking pause
        await simulator.human_pause()
    """

    def __init__(
        self,
        config: Optional[HumanSimulatorConfig] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize the human simulator.

        Args:
            config: Configuration options. Uses defaults if not provided.
            rng: Random source (seed it for reproducible gestures)
            sleep: Awaitable sleep, replaceable in tests
        """
        self.config = config or HumanSimulatorConfig()
        self._rng = rng or random.Random()
        self._sleep = sleep

    def _viewport_center(self, page) -> Tuple[float, float]:
        viewport = page.viewport_size
        if viewport:
            return viewport["width"] / 2, viewport["height"] / 2
        return 500.0, 300.0

    def _jitter(self, factor: float = 1.0) -> float:
        return self._rng.uniform(
            -self.config.mouse_move_jitter_px,
            self.config.mouse_move_jitter_px,
        ) * factor

    async def human_pause(self, reason: str = "thinking") -> float:
        """
        Pause for a human-like duration.

        Args:
            reason: Reason for the pause (for logging)

        Returns:
            Actual pause duration in seconds
        """
        if self.config.fast_mode:
            return 0.0

        pause_duration = self._rng.uniform(
            self.config.min_pause_seconds,
            self.config.max_pause_seconds
        )
        logger.debug(f"Human pause ({reason}): {pause_duration:.2f}s")
        await self._sleep(pause_duration)
        return pause_duration

    async def move_mouse(
        self,
        page,
        start: Tuple[float, float],
        target: Tuple[float, float],
        steps: Optional[int] = None,
    ) -> None:
        """
        Move mouse from start to target through jittered intermediate points.

        Jitter shrinks as the pointer approaches the target.
        """
        steps = steps or self.config.mouse_move_steps
        start_x, start_y = start
        target_x, target_y = target

        for i in range(1, steps + 1):
            progress = i / steps
            x = start_x + (target_x - start_x) * progress
            y = start_y + (target_y - start_y) * progress
            if i < steps:
                x += self._jitter(1 - progress)
                y += self._jitter(1 - progress)
            await page.mouse.move(x, y)
            if not self.config.fast_mode:
                await self._sleep(self.config.step_delay_seconds)

    async def drag(self, page, dx: float, dy: float) -> None:
        """
        Drag from the viewport center by (dx, dy) pixels.

        Args:
            page: Playwright page object
            dx: Horizontal displacement in pixels
            dy: Vertical displacement in pixels
        """
        start = self._viewport_center(page)
        end = (start[0] + dx, start[1] + dy)

        await page.mouse.move(*start)
        await page.mouse.down()
        if not self.config.fast_mode:
            await self._sleep(self.config.hold_before_drag_ms / 1000.0)
        await self.move_mouse(page, start, end, steps=self.config.drag_steps)
        await page.mouse.up()

        logger.debug(f"Dragged map by ({dx:.0f}, {dy:.0f})px")

    async def click_element(self, page, selector: str, move_mouse: bool = True) -> bool:
        """
        Click an element with human-like mouse movement.

        Args:
            page: Playwright page object
            selector: CSS selector for the element
            move_mouse: Whether to move mouse before clicking

        Returns:
            True if the element was found and clicked
        """
        element = await page.query_selector(selector)
        if not element:
            logger.debug(f"Element not found for click: {selector}")
            return False

        if self.config.fast_mode:
            await element.click()
            return True

        box = await element.bounding_box()
        if not box:
            await element.click()
            return True

        offset_x = self._rng.uniform(-self.config.max_click_offset_px, self.config.max_click_offset_px)
        offset_y = self._rng.uniform(-self.config.max_click_offset_px, self.config.max_click_offset_px)
        target_x = box["x"] + box["width"] / 2 + offset_x
        target_y = box["y"] + box["height"] / 2 + offset_y

        if move_mouse:
            await self.move_mouse(page, self._viewport_center(page), (target_x, target_y))

        await self._sleep(self.config.pre_click_delay_ms / 1000.0)
        await page.mouse.click(target_x, target_y)

        logger.debug(f"Clicked element: {selector}")
        return True
