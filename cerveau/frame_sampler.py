"""
Frame Sampler - camera ownership and still capture

Opens the camera with OpenCV, grabs the current frame and turns it into a
small, heavily compressed JPEG suitable for a vision model request.

Usage:
    from cerveau.frame_sampler import FrameSampler, CameraConstraints, CaptureConfig

    sampler = FrameSampler()
    handle = sampler.acquire(CameraConstraints(device=0))
    frame = sampler.capture(handle, CaptureConfig(target_width=320, quality=0.5))
    sampler.release(handle)
"""

import base64
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Optional, Tuple, Union

import cv2

from .config import config
from .exceptions import CameraUnavailable, ConfigurationError, FrameNotReady

logger = logging.getLogger(__name__)

JPEG_MIME = "image/jpeg"


@dataclass
class CameraConstraints:
    """Camera request hints. The device may not honor them exactly."""
    device: Union[int, str] = 0
    facing: str = "environment"
    ideal_width: int = 640
    ideal_height: int = 480
    ideal_fps: float = 15.0

    @classmethod
    def from_env(cls) -> "CameraConstraints":
        """Load from environment/.env"""
        device: Union[int, str] = config.get("CERVEAU_CAMERA_DEVICE", "0")
        if str(device).isdigit():
            device = int(device)
        return cls(
            device=device,
            facing=config.get("CERVEAU_CAMERA_FACING", "environment"),
            ideal_width=config.get_int("CERVEAU_CAMERA_WIDTH", 640),
            ideal_height=config.get_int("CERVEAU_CAMERA_HEIGHT", 480),
            ideal_fps=config.get_float("CERVEAU_CAMERA_FPS", 15.0),
        )


@dataclass
class CaptureConfig:
    """How a frame is downsampled and compressed.

    Attributes:
        target_width: Output width in pixels. Always resampled to this.
        quality: JPEG quality, 0.0 - 1.0. Low on purpose: payload size
                 drives request latency.
        frame_rate: Requested camera frame rate.
        target_height: Fixed output height. None derives it from the
                       source aspect ratio.
    """
    target_width: int = 320
    quality: float = 0.5
    frame_rate: float = 15.0
    target_height: Optional[int] = None

    def __post_init__(self):
        if self.target_width <= 0:
            raise ConfigurationError(f"target_width must be > 0, got {self.target_width}")
        if not 0.0 < self.quality <= 1.0:
            raise ConfigurationError(f"quality must be in (0, 1], got {self.quality}")
        if self.target_height is not None and self.target_height <= 0:
            raise ConfigurationError(f"target_height must be > 0, got {self.target_height}")

    @classmethod
    def from_env(cls) -> "CaptureConfig":
        """Load from environment/.env"""
        return cls(
            target_width=config.get_int("CERVEAU_CAPTURE_WIDTH", 320),
            quality=config.get_float("CERVEAU_CAPTURE_QUALITY", 0.5),
            frame_rate=config.get_float("CERVEAU_CAMERA_FPS", 15.0),
        )

    @property
    def jpeg_quality(self) -> int:
        return max(1, min(100, int(round(self.quality * 100))))

    def resolve(self, source_width: int, source_height: int) -> Tuple[int, int]:
        """Output (width, height) for a source of the given size."""
        if self.target_height is not None:
            return self.target_width, self.target_height
        height = int(round(source_height * self.target_width / source_width))
        return self.target_width, max(1, height)


@dataclass(frozen=True)
class Frame:
    """Encoded still image, consumed by one inference call."""
    data: bytes
    mime_type: str = JPEG_MIME
    width: int = 0
    height: int = 0
    captured_at: int = 0  # ms since epoch

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    @property
    def size_kb(self) -> float:
        return round(len(self.data) / 1024, 1)


def encode_image(image: Any, capture_config: CaptureConfig, captured_at: Optional[int] = None) -> Frame:
    """Downsample a BGR image and compress it to a JPEG Frame.

    Raises:
        FrameNotReady: image has no valid size or encoding failed
    """
    if captured_at is None:
        captured_at = int(time.time() * 1000)
    if image is None or image.ndim < 2:
        raise FrameNotReady("No image data")

    source_height, source_width = image.shape[:2]
    if source_width <= 0 or source_height <= 0:
        raise FrameNotReady("Frame has no intrinsic size yet")

    width, height = capture_config.resolve(source_width, source_height)
    resized = cv2.resize(image, (width, height), interpolation=cv2.INTER_AREA)

    ok, buffer = cv2.imencode(
        ".jpg", resized, [cv2.IMWRITE_JPEG_QUALITY, capture_config.jpeg_quality]
    )
    if not ok:
        raise FrameNotReady("JPEG encoding failed")

    frame = Frame(
        data=buffer.tobytes(),
        mime_type=JPEG_MIME,
        width=width,
        height=height,
        captured_at=captured_at,
    )
    logger.debug(
        f"Encoded {source_width}x{source_height} -> {width}x{height} "
        f"({frame.size_kb} KB, q={capture_config.jpeg_quality})"
    )
    return frame


def load_image(path: str, capture_config: Optional[CaptureConfig] = None) -> Frame:
    """Encode an image file the same way as a camera frame."""
    image = cv2.imread(str(path))
    if image is None:
        raise FrameNotReady(f"Cannot read image: {path}")
    return encode_image(image, capture_config or CaptureConfig())


@dataclass
class StreamHandle:
    """An open camera stream."""
    capture: Any
    constraints: CameraConstraints
    lock: threading.Lock = field(default_factory=threading.Lock)
    released: bool = False


class FrameSampler:
    """Acquires the camera and produces compressed stills from it."""

    def acquire(self, constraints: Optional[CameraConstraints] = None) -> StreamHandle:
        """Open the camera.

        Raises:
            CameraUnavailable: device missing, busy or access denied
        """
        constraints = constraints or CameraConstraints()
        try:
            cap = cv2.VideoCapture(constraints.device)
        except cv2.error as e:
            raise CameraUnavailable(f"Cannot open camera {constraints.device}: {e}") from e

        if cap is None or not cap.isOpened():
            if cap is not None:
                cap.release()
            raise CameraUnavailable(f"Cannot open camera {constraints.device}")

        # Best effort, drivers ignore what they do not support
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.ideal_width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.ideal_height)
        cap.set(cv2.CAP_PROP_FPS, constraints.ideal_fps)
        cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)

        logger.info(
            f"Camera {constraints.device} opened "
            f"(ideal {constraints.ideal_width}x{constraints.ideal_height} "
            f"@ {constraints.ideal_fps:g} fps, facing={constraints.facing})"
        )
        return StreamHandle(capture=cap, constraints=constraints)

    def capture(self, handle: StreamHandle, capture_config: Optional[CaptureConfig] = None) -> Frame:
        """Grab the current frame and encode it.

        Raises:
            FrameNotReady: no valid frame yet, or the handle was released
        """
        capture_config = capture_config or CaptureConfig()
        captured_at = int(time.time() * 1000)

        with handle.lock:
            if handle.released:
                raise FrameNotReady("Stream released")
            ok, image = handle.capture.read()

        if not ok or image is None:
            raise FrameNotReady("No frame available yet")

        return encode_image(image, capture_config, captured_at)

    def release(self, handle: Optional[StreamHandle]) -> None:
        """Stop the camera. Safe to call repeatedly or with None."""
        if handle is None:
            return
        with handle.lock:
            if handle.released:
                return
            handle.released = True
            try:
                handle.capture.release()
            except cv2.error as e:
                logger.warning(f"Camera release failed: {e}")
        logger.info(f"Camera {handle.constraints.device} released")
