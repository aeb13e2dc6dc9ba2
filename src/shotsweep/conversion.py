"""Asynchronous image conversion through an external converter."""

import logging
import subprocess
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable, List, Optional

from .config import ShotsweepConfig
from .exceptions import (
    ConversionError,
    ConversionFailedError,
    ConversionOutputMissingError,
    ConverterUnavailableError,
)
from .models import CandidateImage, PendingConversion

logger = logging.getLogger(__name__)


class ImageConverter(ABC):
    """Abstract base class for image converters."""

    @abstractmethod
    def convert(self, source: Path, target: Path) -> Path:
        """
        Convert an image file.

        Args:
            source: Image to convert
            target: Where the converted image is written

        Returns:
            Path to the converted image

        Raises:
            ConversionError: If conversion fails
        """
        pass

    def is_available(self) -> bool:
        """Return whether the converter can be launched."""
        return True


class MagickConverter(ImageConverter):
    """Converter backed by the ImageMagick command-line tool."""

    def __init__(self, binary_path: Path, quality: int = 80):
        self.binary_path = Path(binary_path)
        self.quality = quality

    def build_command(self, source: Path, target: Path) -> List[str]:
        return [
            str(self.binary_path),
            "convert",
            str(source),
            "-quality",
            str(self.quality),
            str(target),
        ]

    def is_available(self) -> bool:
        return self.binary_path.is_file()

    def convert(self, source: Path, target: Path) -> Path:
        cmd = self.build_command(source, target)
        logger.debug(f"Running converter: {' '.join(cmd)}")

        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise ConverterUnavailableError(
                f"Cannot launch converter {self.binary_path}",
                source=source,
                detail=str(e),
            ) from e

        if result.returncode != 0:
            output = (result.stderr or result.stdout or "").strip()
            raise ConversionFailedError(
                f"Converter exited with status {result.returncode}",
                source=source,
                detail=output,
                returncode=result.returncode,
            )

        if not target.exists():
            raise ConversionOutputMissingError(
                f"Converter reported success but {target} is missing",
                source=source,
                detail=(result.stdout or "").strip(),
            )

        return target


class ConversionPipeline:
    """
    Runs conversions off the event-delivery thread.

    Every submitted candidate produces exactly one completion callback:
    the converted path on success, the original path on any failure.
    """

    def __init__(
        self,
        converter: ImageConverter,
        config: Optional[ShotsweepConfig] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            converter: Converter used for each job
            config: Shotsweep configuration
        """
        self.converter = converter
        self.config = config or ShotsweepConfig()
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, self.config.conversion_workers),
            thread_name_prefix="Conversion",
        )
        self._pending: List[PendingConversion] = []
        self._lock = threading.Lock()

    def needs_conversion(self, candidate: CandidateImage, enabled: bool) -> bool:
        """Check whether a candidate should be converted."""
        return enabled and candidate.extension == self.config.conversion_source_ext

    def target_path_for(self, path: Path) -> Path:
        """Path of the converted image: same name, target extension."""
        return path.with_suffix(f".{self.config.conversion_target_ext}")

    def submit(self, candidate: CandidateImage, on_done: Callable[[Path], None]) -> Future:
        """
        Schedule a conversion.

        Args:
            candidate: Image to convert
            on_done: Called once with the path to publish

        Returns:
            Future resolving to the published path
        """
        job = PendingConversion(
            source_path=candidate.path,
            target_path=self.target_path_for(candidate.path),
        )
        with self._lock:
            self._pending.append(job)

        try:
            return self._executor.submit(self._run, job, on_done)
        except RuntimeError as e:
            # Executor already shut down; publish the original unconverted
            logger.warning(f"Conversion of {job.source_path.name} not started: {e}")
            with self._lock:
                self._pending.remove(job)
            future: Future = Future()
            on_done(job.source_path)
            future.set_result(job.source_path)
            return future

    def _run(self, job: PendingConversion, on_done: Callable[[Path], None]) -> Path:
        result = job.source_path
        try:
            result = self.converter.convert(job.source_path, job.target_path)
            logger.info(f"Converted {job.source_path.name} -> {result.name}")
        except ConverterUnavailableError as e:
            logger.warning(f"Converter unavailable, keeping {job.source_path.name}: {e.detail or e}")
        except ConversionError as e:
            logger.warning(f"Conversion of {job.source_path.name} failed: {e}. {e.detail}".rstrip())
        except Exception as e:
            logger.error(f"Unexpected conversion error for {job.source_path}: {e}")
        finally:
            with self._lock:
                self._pending.remove(job)

        on_done(result)
        return result

    def pending(self) -> List[PendingConversion]:
        """Conversions currently in flight."""
        with self._lock:
            return list(self._pending)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting jobs and optionally wait for running ones."""
        self._executor.shutdown(wait=wait)
