# storage.py
"""
Local persistence of named field functions.

Records live in one JSON file mapping each name to
{"name", "code", "savedAt"}. The code is the field's source text, so a
reloaded record recompiles into the same field it was saved from.
"""
import json
import logging
import os
from datetime import datetime, timezone
from typing import Dict, List

# --- Data Contracts ---
#
# class FunctionStore:
#   - __init__(self, path: str)
#   - save(self, name: str, code: str) -> Dict[str, str]
#     - Overwrites any record with the same (stripped) name.
#     - Raises: ValueError for an empty name or empty code.
#   - load(self, name: str) -> Dict[str, str]
#     - Raises: KeyError if no record has that name.
#   - delete(self, name: str) -> bool: True if a record was removed.
#   - names(self) -> List[str]: sorted.
#   - Invariants: a missing file is an empty store; a malformed file is
#     logged and its json.JSONDecodeError / ValueError re-raised.


class FunctionStore:
    """
    Named field functions in a JSON file.
    """
    def __init__(self, path: str):
        self.path = path

    def _read(self) -> Dict[str, Dict[str, str]]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError:
            logging.error(f"Error decoding saved functions from {self.path}.")
            raise
        if not isinstance(data, dict):
            msg = f"Saved functions file {self.path} does not hold a JSON object."
            logging.error(msg)
            raise ValueError(msg)
        return data

    def _write(self, data: Dict[str, Dict[str, str]]) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        # Write then rename, so a crash never leaves a half-written store.
        temp_path = f"{self.path}.tmp"
        with open(temp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, sort_keys=True)
        os.replace(temp_path, self.path)

    def save(self, name: str, code: str) -> Dict[str, str]:
        name = (name or '').strip()
        if not name:
            raise ValueError("A saved function needs a name.")
        if not isinstance(code, str) or not code.strip():
            raise ValueError(f"No source to save for '{name}'.")

        data = self._read()
        if name in data:
            logging.info(f"Overwriting saved function '{name}'.")
        record = {
            'name': name,
            'code': code,
            'savedAt': datetime.now(timezone.utc).isoformat(),
        }
        data[name] = record
        self._write(data)
        return record

    def load(self, name: str) -> Dict[str, str]:
        data = self._read()
        if name not in data:
            raise KeyError(f"No saved function named '{name}'.")
        return data[name]

    def delete(self, name: str) -> bool:
        data = self._read()
        if name not in data:
            return False
        del data[name]
        self._write(data)
        logging.info(f"Deleted saved function '{name}'.")
        return True

    def names(self) -> List[str]:
        return sorted(self._read())

    def latest(self) -> str:
        """Name of the most recently saved record. Raises KeyError if the store is empty."""
        data = self._read()
        if not data:
            raise KeyError("No saved functions.")
        return max(data.values(), key=lambda record: record.get('savedAt', ''))['name']
