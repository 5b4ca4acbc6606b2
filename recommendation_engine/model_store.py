"""
Model artifact store and the process-wide active-model registry.

ModelStore pickles artifacts to the local filesystem and optionally mirrors
them to S3 (LocalStack in development via aws_endpoint_url).

ModelRegistry holds the active MatrixFactorizationModel. Training produces a
new immutable snapshot which replaces the reference in a single assignment,
so readers never lock.
"""

from __future__ import annotations

import pickle
import threading
from pathlib import Path
from typing import Any, Optional

import structlog

from recommendation_engine.models.matrix_factorization import MatrixFactorizationModel

logger = structlog.get_logger()

MF_ARTIFACT = "mf_model"


class ModelStore:
    """Loads and saves pickled model artifacts."""

    def __init__(
        self,
        base_path: str | Path,
        storage_type: str = "local",
        s3_bucket: Optional[str] = None,
        aws_region: str = "us-east-1",
        aws_endpoint_url: Optional[str] = None,
    ):
        self.base_path = Path(base_path)
        self.storage_type = storage_type
        self.s3_bucket = s3_bucket
        self.aws_region = aws_region
        self.aws_endpoint_url = aws_endpoint_url

    @classmethod
    def from_settings(cls, settings) -> "ModelStore":
        return cls(
            base_path=settings.model_storage_path,
            storage_type=settings.model_storage_type,
            s3_bucket=settings.aws_s3_bucket,
            aws_region=settings.aws_region,
            aws_endpoint_url=settings.aws_endpoint_url,
        )

    def save_artifact(self, name: str, obj: Any, version: str = "latest") -> str:
        """Pickle an artifact, then mirror it to S3 when configured."""
        self.base_path.mkdir(parents=True, exist_ok=True)
        path = self.base_path / f"{name}_{version}.pkl"
        tmp_path = path.with_suffix(".pkl.tmp")
        with open(tmp_path, "wb") as f:
            pickle.dump(obj, f)
        tmp_path.replace(path)
        logger.info("model_artifact_saved", name=name, version=version, path=str(path))

        if self.storage_type == "s3":
            self._upload_to_s3(path, f"models/{name}_{version}.pkl")

        return str(path)

    def load_artifact(self, name: str, version: str = "latest") -> Optional[Any]:
        """Load an artifact. Returns None if not found."""
        path = self.base_path / f"{name}_{version}.pkl"
        if not path.exists():
            if self.storage_type != "s3" or not self._download_from_s3(
                f"models/{name}_{version}.pkl", path
            ):
                logger.warning("model_artifact_not_found", name=name, version=version)
                return None

        with open(path, "rb") as f:
            obj = pickle.load(f)

        logger.info("model_artifact_loaded", name=name, version=version)
        return obj

    def _s3_client(self):
        import boto3

        kwargs = {"region_name": self.aws_region}
        if self.aws_endpoint_url:
            kwargs["endpoint_url"] = self.aws_endpoint_url
        return boto3.client("s3", **kwargs)

    def _upload_to_s3(self, local_path: Path, s3_key: str) -> None:
        try:
            self._s3_client().upload_file(str(local_path), self.s3_bucket, s3_key)
            logger.info("model_uploaded_to_s3", key=s3_key, endpoint=self.aws_endpoint_url or "aws")
        except Exception as e:
            logger.error("s3_upload_error", key=s3_key, error=str(e))

    def _download_from_s3(self, s3_key: str, local_path: Path) -> bool:
        try:
            local_path.parent.mkdir(parents=True, exist_ok=True)
            self._s3_client().download_file(self.s3_bucket, s3_key, str(local_path))
            logger.info("model_downloaded_from_s3", key=s3_key, endpoint=self.aws_endpoint_url or "aws")
            return True
        except Exception as e:
            logger.error("s3_download_error", key=s3_key, error=str(e))
            return False


class ModelRegistry:
    """Holds the active matrix-factorization snapshot."""

    def __init__(self, store: Optional[ModelStore] = None):
        self.store = store
        self._active = MatrixFactorizationModel.empty()
        self._write_lock = threading.Lock()
        self._load_lock = threading.Lock()
        self._load_attempted = False

    @property
    def active(self) -> MatrixFactorizationModel:
        return self._active

    def swap(self, model: MatrixFactorizationModel) -> MatrixFactorizationModel:
        """Install a new snapshot; returns the one it replaced."""
        with self._write_lock:
            previous = self._active
            self._active = model
        logger.info(
            "mf_model_swapped",
            version=model.version,
            previous_version=previous.version,
            n_users=len(model.user_factors),
            n_items=len(model.item_factors),
        )
        return previous

    def reload(self) -> bool:
        """Swap in the persisted model, if any. Returns whether a model was installed."""
        self._load_attempted = True
        if self.store is None:
            return False
        model = self.store.load_artifact(MF_ARTIFACT)
        if not isinstance(model, MatrixFactorizationModel):
            return False
        self.swap(model)
        return True

    def ensure_loaded(self) -> MatrixFactorizationModel:
        """Try the persisted artifact once when nothing is trained; never trains."""
        if not self._active.is_trained and not self._load_attempted:
            with self._load_lock:
                # Concurrent first requests share one load
                if not self._load_attempted:
                    self.reload()
        return self._active
