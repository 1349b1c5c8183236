#!/usr/bin/env python3
# CUI // SP-PROPIN
"""Catalog and test-requirement loaders for JSON exports of the inventory system."""

import json
import logging
from pathlib import Path
from typing import Any, List

from rfxcore.rfx.models import CatalogItem, TestRequirement

logger = logging.getLogger(__name__)


def _read_records(path, container_key: str) -> List[Any]:
    with open(Path(path), "r", encoding="utf-8") as fh:
        data = json.load(fh)
    if isinstance(data, dict):
        data = data.get(container_key, [])
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list or an object with '{container_key}'")
    return data


def load_catalog(path) -> List[CatalogItem]:
    """Load SKUs from a JSON list or {"skus": [...]}."""
    items = []
    for i, record in enumerate(_read_records(path, "skus")):
        if not isinstance(record, dict):
            raise ValueError(f"catalog record {i}: expected an object")
        try:
            items.append(CatalogItem.from_dict(record))
        except ValueError as exc:
            raise ValueError(f"catalog record {i}: {exc}") from exc
    logger.info("Loaded %d catalog items from %s", len(items), path)
    return items


def load_tests(path) -> List[TestRequirement]:
    """Load test requirements from a JSON list or {"tests": [...]}."""
    tests = []
    for i, record in enumerate(_read_records(path, "tests")):
        if not isinstance(record, dict):
            raise ValueError(f"test record {i}: expected an object")
        test = TestRequirement.from_dict(record)
        if not test.test_name:
            raise ValueError(f"test record {i}: missing test name")
        tests.append(test)
    return tests
