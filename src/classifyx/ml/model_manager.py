"""Model manager: locate or download the ONNX model and build sessions.

Every call to :meth:`OnnxModelManager.create_session` returns a fresh
InferenceSession, so each engine in the pool owns its own loaded graph.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from huggingface_hub import hf_hub_download
from onnxruntime import InferenceSession, SessionOptions, get_available_providers
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

from classifyx.errors import ConfigurationError
from classifyx.ml.engine import OnnxClassificationEngine

if TYPE_CHECKING:
    from classifyx.config import Settings

logger = logging.getLogger(__name__)


class OnnxModelManager:
    """Resolves the configured model file and creates ONNX inference sessions."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._models_dir = Path(settings.models_dir)
        self._model_path: Path | None = None

        self._providers = self._build_providers()
        self._session_options = self._build_session_options()

    # -- Public API ---------------------------------------------------------

    @property
    def model_name(self) -> str:
        settings = self._settings
        if settings.model_path:
            return Path(settings.model_path).stem
        if settings.model_repo_id:
            return f"{settings.model_repo_id}/{settings.model_filename}"
        return "unconfigured"

    @property
    def model_source(self) -> str:
        if self._settings.model_path:
            return "local"
        if self._settings.model_repo_id:
            return "huggingface"
        return "none"

    def ensure_model(self) -> Path:
        """Return the local model file, downloading it from the Hub if needed.

        Raises:
            ConfigurationError: If no model source is configured or the local file is missing.
        """
        if self._model_path is not None and self._model_path.exists():
            return self._model_path

        settings = self._settings
        if settings.model_path:
            path = Path(settings.model_path)
            if not path.is_file():
                raise ConfigurationError(f"Model file not found: {path}")
        elif settings.model_repo_id:
            self._models_dir.mkdir(parents=True, exist_ok=True)
            path = Path(
                hf_hub_download(
                    repo_id=settings.model_repo_id,
                    filename=settings.model_filename,
                    subfolder=settings.model_subfolder,
                    local_dir=str(self._models_dir),
                )
            )
            logger.info("Downloaded %s to %s", self.model_name, path)
        else:
            raise ConfigurationError("Set CLASSIFYX_MODEL_PATH or CLASSIFYX_MODEL_REPO_ID")

        self._model_path = path
        return path

    def create_session(self) -> InferenceSession:
        """Create a new InferenceSession for the configured model."""
        model_path = self.ensure_model()
        session = InferenceSession(
            str(model_path),
            sess_options=self._session_options,
            providers=self._providers,
        )
        logger.info("Loaded session for %s", self.model_name)
        return session

    def create_engines(self, count: int) -> list[OnnxClassificationEngine]:
        """Build ``count`` independent engines, one session each."""
        return [
            OnnxClassificationEngine(self.create_session(), self._settings, self.model_name) for _ in range(count)
        ]

    # -- Internal -----------------------------------------------------------

    def _build_providers(self) -> list[str | tuple[str, dict[str, object]]]:
        providers = self._preferred_providers()
        available = set(get_available_providers())
        usable = [p for p in providers if (p if isinstance(p, str) else p[0]) in available]
        if len(usable) < len(providers):
            logger.warning(
                "Device %s requested but only %s are available", self._settings.device, sorted(available)
            )
        return usable or ["CPUExecutionProvider"]

    def _preferred_providers(self) -> list[str | tuple[str, dict[str, object]]]:
        device = self._settings.device
        if device == "cuda":
            return [
                (
                    "CUDAExecutionProvider",
                    {
                        "device_id": 0,
                        "gpu_mem_limit": self._settings.gpu_mem_limit,
                        "arena_extend_strategy": "kSameAsRequested",
                    },
                ),
                "CPUExecutionProvider",
            ]
        if device == "openvino":
            return [
                ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
                "CPUExecutionProvider",
            ]
        return ["CPUExecutionProvider"]

    def _build_session_options(self) -> SessionOptions:
        opts = SessionOptions()
        opts.intra_op_num_threads = self._settings.intra_op_threads
        opts.inter_op_num_threads = self._settings.inter_op_threads
        opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL
        opts.enable_mem_pattern = True
        opts.enable_mem_reuse = True

        if self._settings.device == "openvino":
            # OpenVINO does its own graph optimization
            from onnxruntime import GraphOptimizationLevel

            opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
        return opts
