"""Two-tier configuration loading with URI fetching and caching."""

import copy
import hashlib
import logging
import os
import shutil
import time
import urllib.parse
from importlib.resources import files
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
import yaml
from jsonschema import Draft7Validator

logger = logging.getLogger(__name__)


def _engine_section(**properties: Dict[str, Any]) -> Dict[str, Any]:
    # Section keys are passed straight to the engine constructor
    return {
        "type": "object",
        "properties": {
            "enabled": {"type": "boolean"},
            "real_time": {"type": "boolean"},
            "max_concurrent_validations": {"type": "integer", "minimum": 1},
            **properties,
        },
        "additionalProperties": False,
    }


CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "validation": _engine_section(
            validation_debounce_ms={"type": "integer", "minimum": 0},
            enable_suggestions={"type": "boolean"},
        ),
        "cross_field": _engine_section(
            validation_debounce_ms={"type": "integer", "minimum": 0},
            locale={"type": "string"},
        ),
        "business_rules": _engine_section(
            evaluation_debounce_ms={"type": "integer", "minimum": 0},
        ),
        "rules_uri": {
            "anyOf": [
                {"type": "null"},
                {"type": "string"},
                {"type": "array", "items": {"type": "string"}},
            ]
        },
    },
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigLoader:
    """Handles two-tier configuration: bundled engine defaults + user config."""

    CACHE_DIR = Path.home() / ".cache" / "form-rules-lib"
    FETCH_TIMEOUT = 10

    def __init__(
        self,
        config_uri: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
        cache_dir: Optional[Path] = None,
    ):
        """
        Initialize config loader.

        The bundled engine-config.yaml supplies defaults for every engine
        section. A user config, when given, is merged over it key by key,
        then programmatic overrides are merged over the result.

        Args:
            config_uri: Relative path, file:// or http(s):// URI of a user config
            overrides: Dict merged last (same shape as the YAML)
            cache_dir: Directory for fetched remote documents

        Raises:
            ValueError: If the merged config does not match CONFIG_SCHEMA
            RuntimeError: If the user config cannot be fetched
        """
        config_file = files("form_rules_lib").joinpath("engine-config.yaml")
        self.bundled_config_path = str(config_file)
        self.cache_dir = Path(cache_dir) if cache_dir is not None else self.CACHE_DIR
        self.config_uri = config_uri

        with config_file.open("r") as f:
            self.bundled_config = yaml.safe_load(f) or {}

        config = self.bundled_config
        if config_uri:
            config = _deep_merge(config, self.load_document(config_uri) or {})
        if overrides:
            config = _deep_merge(config, overrides)

        self._validate(config)
        self.config = config
        self.config_loaded_at = time.time()
        logger.debug(
            "Engine config loaded",
            extra={"config_uri": config_uri, "sections": sorted(config)},
        )

    def _validate(self, config: Dict[str, Any]) -> None:
        errors = sorted(Draft7Validator(CONFIG_SCHEMA).iter_errors(config), key=lambda e: list(e.path))
        if errors:
            details = "; ".join(
                f"{' -> '.join(str(p) for p in error.path) or '<root>'}: {error.message}"
                for error in errors
            )
            raise ValueError(f"Invalid engine config: {details}")

    def _load_yaml(self, path: str) -> Any:
        """Load YAML file from disk."""
        try:
            with open(path) as f:
                return yaml.safe_load(f)
        except OSError as e:
            raise RuntimeError(f"Failed to read config from {path}: {e}")

    def load_document(self, uri: str) -> Any:
        """
        Load a YAML document from URI (with caching).

        Supports:
        - Relative paths - resolved against the current working directory
        - file:// - Local filesystem (absolute paths)
        - https:// - Remote HTTPS
        - http:// - Remote HTTP

        Args:
            uri: Document URI or relative path

        Returns:
            Parsed YAML document

        Raises:
            ValueError: If the URI scheme is not supported
            RuntimeError: If the document cannot be read or fetched
        """
        parsed = urllib.parse.urlparse(uri)

        if not parsed.scheme:
            return self._load_yaml(os.path.abspath(uri))

        if parsed.scheme == "file":
            return self._load_yaml(urllib.parse.unquote(parsed.path))

        if parsed.scheme in ("http", "https"):
            cache_key = hashlib.sha256(uri.encode()).hexdigest()
            cache_path = self.cache_dir / f"config_{cache_key}.yaml"

            if cache_path.exists():
                return self._load_yaml(str(cache_path))

            content = self._fetch_uri(uri)
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            cache_path.write_text(content)
            return yaml.safe_load(content)

        raise ValueError(f"Unsupported URI scheme: {parsed.scheme} in {uri}")

    def _fetch_uri(self, uri: str) -> str:
        """Fetch content from HTTP/HTTPS URI."""
        try:
            response = requests.get(uri, timeout=self.FETCH_TIMEOUT)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error("Config fetch failed", extra={"uri": uri, "error": str(e)})
            raise RuntimeError(f"Failed to fetch config from {uri}: {e}")
        return response.text

    def get_validation_config(self) -> Dict[str, Any]:
        """Keyword arguments for ValidationEngine."""
        return dict(self.config.get("validation") or {})

    def get_cross_field_config(self) -> Dict[str, Any]:
        """Keyword arguments for CrossFieldCoordinator."""
        return dict(self.config.get("cross_field") or {})

    def get_business_rules_config(self) -> Dict[str, Any]:
        """Keyword arguments for BusinessRuleEngine."""
        return dict(self.config.get("business_rules") or {})

    def get_rule_documents(self) -> List[Any]:
        """
        Load every rule document named by rules_uri.

        Returns:
            Parsed documents in the order given (empty when rules_uri is unset)
        """
        rules_uri = self.config.get("rules_uri")
        if not rules_uri:
            return []
        uris = [rules_uri] if isinstance(rules_uri, str) else list(rules_uri)
        return [self.load_document(uri) for uri in uris]

    def get_config_age(self) -> Optional[float]:
        """
        Get age of the merged config in seconds since it was loaded.

        Returns:
            Age in seconds, or None if not loaded
        """
        if hasattr(self, "config_loaded_at"):
            return time.time() - self.config_loaded_at
        return None

    def clear_cache(self) -> None:
        """Delete every cached remote document."""
        if self.cache_dir.exists():
            shutil.rmtree(str(self.cache_dir))
