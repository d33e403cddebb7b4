"""
Credential Store
================

Persists the cookies and form tokens harvested from each portal page as a
JSON map keyed by the page URL without its query string:

    {
      "https://rrk.ir/ords/r/rrs/rrs-front/big_data11": {
        "cookies": "ORA_WWV_APP_1=...",
        "formData": {"flowId": "...", "salt": "...", "ajaxIdentifiers": {...}}
      }
    }
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from config_schemas import FormCredentials, UrlCredentials

logger = logging.getLogger(__name__)


def strip_query(url: str) -> str:
    return url.split("?")[0]


def read_json_file(file_path: Union[str, Path]) -> Optional[Any]:
    """Read JSON from a file; None if it is missing or unreadable"""
    path = Path(file_path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        logger.error(f"Error reading file {path}: {e}")
        return None


def write_json_file(file_path: Union[str, Path], data: Any) -> None:
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


class CredentialStore:
    """JSON file of page URL -> {cookies, formData}"""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> Dict[str, Dict[str, Any]]:
        data = read_json_file(self.path)
        if not isinstance(data, dict):
            return {}
        return data

    def get(self, url: str) -> Optional[UrlCredentials]:
        entry = self.load().get(strip_query(url))
        if entry is None:
            return None
        return UrlCredentials.model_validate(entry)

    def save(self, url: str, cookies: Optional[str] = None,
             form_data: Optional[FormCredentials] = None) -> Dict[str, Any]:
        """
        Merge new credentials for a page into the store.

        Top-level entry keys are replaced, formData keys are merged with the
        new values winning. A key whose new value is null is dropped.

        Returns:
            The stored entry for the page
        """
        key = strip_query(url)
        data = self.load()
        existing = data.get(key, {})

        new_entry: Dict[str, Any] = {}
        if cookies is not None:
            new_entry["cookies"] = cookies

        merged_form = dict(existing.get("formData") or {})
        if form_data is not None:
            merged_form.update(form_data.model_dump(mode="json", by_alias=True))
        merged_form = {k: v for k, v in merged_form.items() if v is not None}

        entry = {**existing, **new_entry, "formData": merged_form}
        data[key] = entry
        write_json_file(self.path, data)
        logger.debug(f"Saved credentials for {key} ({len(merged_form)} form fields)")
        return entry

    def clear(self) -> None:
        write_json_file(self.path, {})
        logger.debug(f"Cleared credentials at {self.path}")
