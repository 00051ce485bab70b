"""
Project Bundles

A ``.manuproj`` file is a zip archive holding the project models as JSON in
``index.manuscript-json`` and attachment payloads under ``Data/<model id>``.
Plain JSON files holding ``{"data": [...]}`` or a bare list of models are
accepted too (without attachments).
"""
from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import json
import logging
import zipfile

from manuscript_validator.errors import InputError
from manuscript_validator.models import MANUSCRIPT, Model

logger = logging.getLogger(__name__)

INDEX_NAME = "index.manuscript-json"
DATA_PREFIX = "Data/"


@dataclass
class BundleData:
    path: str
    data: List[Model]
    attachments: Dict[str, bytes] = field(default_factory=dict)

    def get_binary(self, model_id: str) -> Optional[bytes]:
        return self.attachments.get(model_id)

    def manuscript_ids(self) -> List[str]:
        return [m["_id"] for m in self.data if m.get("objectType") == MANUSCRIPT]

    def resolve_manuscript_id(self, manuscript_id: Optional[str] = None) -> str:
        """The given manuscript ID, or the project's only manuscript."""
        if manuscript_id:
            return manuscript_id
        ids = self.manuscript_ids()
        if len(ids) != 1:
            raise InputError(f"{self.path} holds {len(ids)} manuscripts; pass a manuscript ID")
        return ids[0]


def _models_from_json(payload: Any, source: str) -> List[Model]:
    if isinstance(payload, dict):
        payload = payload.get("data")
    if not isinstance(payload, list):
        raise InputError(f"{source} does not contain a list of models")
    for model in payload:
        if not isinstance(model, dict) or "_id" not in model:
            raise InputError(f"{source} contains a model without _id")
    return payload


def _load_zip(path: Path) -> BundleData:
    with zipfile.ZipFile(path) as archive:
        names = set(archive.namelist())
        if INDEX_NAME not in names:
            raise InputError(f"{path} has no {INDEX_NAME}")
        payload = json.loads(archive.read(INDEX_NAME).decode("utf-8"))
        attachments = {
            name[len(DATA_PREFIX):]: archive.read(name)
            for name in names
            if name.startswith(DATA_PREFIX) and not name.endswith("/")
        }
    data = _models_from_json(payload, f"{path}:{INDEX_NAME}")
    return BundleData(path=str(path), data=data, attachments=attachments)


def load_bundle(path: Union[str, Path]) -> BundleData:
    path = Path(path)
    if not path.exists():
        raise InputError(f"{path} does not exist")

    try:
        if zipfile.is_zipfile(path):
            bundle = _load_zip(path)
        else:
            with open(path, "r", encoding="utf-8") as f:
                bundle = BundleData(path=str(path), data=_models_from_json(json.load(f), str(path)))
    except (json.JSONDecodeError, UnicodeDecodeError, zipfile.BadZipFile) as e:
        raise InputError(f"Could not read {path}: {e}") from e

    logger.info(f"Loaded {len(bundle.data)} models and {len(bundle.attachments)} attachments from {path}")
    return bundle


def write_bundle(path: Union[str, Path], data: List[Model], attachments: Optional[Dict[str, bytes]] = None) -> None:
    """Write models (and attachments) back as a ``.manuproj`` archive, or JSON for other suffixes."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix != ".manuproj":
        with open(path, "w", encoding="utf-8") as f:
            json.dump({"data": data}, f, ensure_ascii=False, indent=2)
        return
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(INDEX_NAME, json.dumps({"data": data}, ensure_ascii=False))
        for model_id, payload in (attachments or {}).items():
            archive.writestr(DATA_PREFIX + model_id, payload)
