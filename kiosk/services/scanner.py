import asyncio
import logging
from typing import Awaitable, Callable, Optional

import cv2

from kiosk.core.config import settings
from kiosk.core.errors import AgentError
from kiosk.services.agent_client import AgentClient
from kiosk.services.checkin.controller import InputSource

logger = logging.getLogger(__name__)

SubmitCode = Callable[[str], Awaitable[object]]


class _LoopSource(InputSource):
    """Background asyncio loop that only runs its body while armed"""

    def __init__(self, submit: SubmitCode, interval: float):
        self.submit = submit
        self.interval = interval
        self._armed = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def armed(self) -> bool:
        return self._armed.is_set()

    def arm(self) -> None:
        self._armed.set()

    def disarm(self) -> None:
        self._armed.clear()

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        self.disarm()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _run(self) -> None:
        while True:
            await self._armed.wait()
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"❌ {self.mode.capitalize()} input error: {e}")
            await asyncio.sleep(self.interval)

    async def tick(self) -> None:
        raise NotImplementedError


class ScannerPoller(_LoopSource):
    """Polls the agent for hardware scanner codes"""

    mode = "scanner"

    def __init__(self, agent: AgentClient, submit: SubmitCode, interval: Optional[float] = None):
        super().__init__(submit, interval or settings.SCANNER_POLL_INTERVAL)
        self.agent = agent

    async def tick(self) -> None:
        try:
            code = await asyncio.to_thread(self.agent.consume_scan)
        except AgentError as e:
            # retried on the next tick
            logger.debug(f"Scanner poll failed: {e}")
            return
        if code and self.armed:
            logger.info(f"📷 Scanner code received: {code}")
            await self.submit(code)


class CameraScanner(_LoopSource):
    """Decodes QR codes from a local camera with OpenCV"""

    mode = "camera"

    def __init__(self, submit: SubmitCode, on_unavailable: Callable[[str], None],
                 camera_index: Optional[int] = None, interval: Optional[float] = None,
                 capture_factory: Callable[[int], object] = cv2.VideoCapture):
        super().__init__(submit, interval or settings.CAMERA_FRAME_INTERVAL)
        self.on_unavailable = on_unavailable
        self.camera_index = settings.CAMERA_INDEX if camera_index is None else camera_index
        self.capture_factory = capture_factory
        self._capture = None
        self._detector = cv2.QRCodeDetector()

    def _open(self) -> bool:
        capture = self.capture_factory(self.camera_index)
        if not capture.isOpened():
            capture.release()
            return False
        self._capture = capture
        logger.info(f"✅ Camera {self.camera_index} opened")
        return True

    def _release(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None

    def _read_code(self) -> Optional[str]:
        ok, frame = self._capture.read()
        if not ok:
            raise RuntimeError("Failed to read frame from camera")
        data, points, _ = self._detector.detectAndDecode(frame)
        return data.strip() if data and data.strip() else None

    def _fail(self, reason: str) -> None:
        logger.error(f"❌ {reason}")
        self._release()
        self.disarm()
        self.on_unavailable(reason)

    async def tick(self) -> None:
        if self._capture is None:
            opened = await asyncio.to_thread(self._open)
            if not opened:
                self._fail("Camera not available")
                return
        try:
            code = await asyncio.to_thread(self._read_code)
        except (RuntimeError, cv2.error) as e:
            self._fail(f"Camera error: {e}")
            return
        if code and self.armed:
            logger.info(f"📷 QR code decoded: {code}")
            await self.submit(code)

    async def stop(self) -> None:
        await super().stop()
        self._release()


async def wait_for_scan(agent: AgentClient, timeout: Optional[float] = None,
                        interval: Optional[float] = None) -> Optional[str]:
    """Wait for one scanner code, used by the equipment test screen"""
    timeout = settings.SCANNER_TEST_TIMEOUT if timeout is None else timeout
    interval = interval or settings.SCANNER_POLL_INTERVAL
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout

    try:
        await asyncio.to_thread(agent.clear_scan)
    except AgentError as e:
        logger.warning(f"⚠️ Could not clear scanner buffer: {e}")

    while loop.time() < deadline:
        try:
            code = await asyncio.to_thread(agent.consume_scan)
        except AgentError as e:
            logger.debug(f"Scanner poll failed: {e}")
            code = None
        if code:
            logger.info(f"✅ Test scan received: {code}")
            return code
        await asyncio.sleep(interval)

    logger.info("Scanner test timed out")
    return None
