#!/usr/bin/env python3
# CUI // SP-PROPIN
# Controlled by: RFX Proposal Engine
# CUI Category: PROPIN
# Distribution: D
# POC: RFX Proposal Engine Administrator
"""Engine configuration loaded from args/proposal_config.yaml.

Each YAML section maps onto one component's config dataclass:

    pricing     -> bom_pricer.PricingConfig
    risk        -> risk.RiskConfig
    compliance  -> ComplianceSettings (checklist + terms evaluated)
    strategy    -> competitive.strategy.StrategyConfig
    extraction  -> ExtractionSettings (retry budget + mode)

Missing file: built-in defaults. A file that is present must be a mapping
with known sections and keys only; anything else raises ConfigError.
RFX_CONFIG_PATH overrides the default path.
"""

import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from rfxcore.competitive.strategy import StrategyConfig
from rfxcore.errors import ConfigError
from rfxcore.resilience.retry import RetryPolicy
from rfxcore.rfx.bom_pricer import PricingConfig
from rfxcore.rfx.compliance import (
    DEFAULT_CHECKLIST,
    DEFAULT_TERMS_EVALUATED,
    ChecklistItem,
    build_checklist,
)
from rfxcore.rfx.extraction import MIN_EXTRACTION_RETRIES, ExtractionMode
from rfxcore.rfx.risk import RiskConfig

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent.parent.parent
DEFAULT_CONFIG_PATH = BASE_DIR / "args" / "proposal_config.yaml"

# Keys where null means "no limit".
_NULLABLE = {"timeout_seconds", "total_budget_seconds"}


@dataclass(frozen=True)
class ComplianceSettings:
    checklist: Tuple[ChecklistItem, ...] = DEFAULT_CHECKLIST
    terms_evaluated: int = DEFAULT_TERMS_EVALUATED


@dataclass(frozen=True)
class ExtractionSettings:
    timeout_seconds: Optional[float] = 30.0
    max_retries: int = 2
    base_delay: float = 2.0
    total_budget_seconds: Optional[float] = 90.0
    mode: ExtractionMode = ExtractionMode.STRICT

    def __post_init__(self):
        if self.max_retries < MIN_EXTRACTION_RETRIES:
            raise ValueError(
                f"extraction max_retries must be >= {MIN_EXTRACTION_RETRIES}, "
                f"got {self.max_retries}"
            )

    def policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            timeout_seconds=self.timeout_seconds,
            total_budget_seconds=self.total_budget_seconds,
        )


@dataclass(frozen=True)
class ProposalConfig:
    pricing: PricingConfig = field(default_factory=PricingConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    compliance: ComplianceSettings = field(default_factory=ComplianceSettings)
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    extraction: ExtractionSettings = field(default_factory=ExtractionSettings)

    def with_currency(self, currency: str) -> "ProposalConfig":
        return replace(self, pricing=replace(self.pricing, currency=currency))


def default_config_path() -> Path:
    env = os.environ.get("RFX_CONFIG_PATH")
    return Path(env) if env else DEFAULT_CONFIG_PATH


def _check_keys(section: str, data: Any, allowed) -> Dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config section '{section}' must be a mapping",
                          {"section": section})
    unknown = sorted(set(data) - set(allowed))
    if unknown:
        raise ConfigError(
            f"Unknown key(s) in '{section}': {', '.join(map(str, unknown))}",
            {"section": section, "unknown": unknown},
        )
    return dict(data)


def _build(section: str, cls, data: Any, **extra):
    names = [f.name for f in fields(cls)]
    values = _check_keys(section, data, names)
    for key, value in values.items():
        default = getattr(cls, key, None)
        if value is None and key in _NULLABLE:
            continue
        if isinstance(default, (int, float)) and not isinstance(default, bool):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"'{section}.{key}' must be a number, got {value!r}",
                                  {"section": section, "key": key})
    values.update(extra)
    try:
        return cls(**values)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid '{section}' config: {exc}",
                          {"section": section}) from exc


def _build_compliance(data: Any) -> ComplianceSettings:
    values = _check_keys("compliance", data, ("checklist", "terms_evaluated"))
    kwargs: Dict[str, Any] = {}
    terms = values.get("terms_evaluated")
    if terms is not None:
        if isinstance(terms, bool) or not isinstance(terms, int) or terms < 0:
            raise ConfigError(
                f"'compliance.terms_evaluated' must be a non-negative integer, got {terms!r}",
                {"section": "compliance", "key": "terms_evaluated"},
            )
        kwargs["terms_evaluated"] = terms
    if "checklist" in values:
        try:
            kwargs["checklist"] = build_checklist(values["checklist"] or [])
        except (AttributeError, TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid compliance checklist: {exc}",
                              {"section": "compliance"}) from exc
    return ComplianceSettings(**kwargs)


def _build_extraction(data: Any) -> ExtractionSettings:
    values = _check_keys("extraction", data, [f.name for f in fields(ExtractionSettings)])
    mode = values.pop("mode", None)
    extra = {}
    if mode is not None:
        try:
            extra["mode"] = ExtractionMode(str(mode).lower())
        except ValueError:
            raise ConfigError(f"Unknown extraction mode {mode!r}",
                              {"section": "extraction"}) from None
    return _build("extraction", ExtractionSettings, values, **extra)


def config_from_dict(data: Mapping) -> ProposalConfig:
    """Build a ProposalConfig from an already-parsed mapping."""
    if not isinstance(data, Mapping):
        raise ConfigError("Proposal config must be a mapping")
    sections = _check_keys("<root>", data,
                           ("pricing", "risk", "compliance", "strategy", "extraction"))
    return ProposalConfig(
        pricing=_build("pricing", PricingConfig, sections.get("pricing")),
        risk=_build("risk", RiskConfig, sections.get("risk")),
        compliance=_build_compliance(sections.get("compliance")),
        strategy=_build("strategy", StrategyConfig, sections.get("strategy")),
        extraction=_build_extraction(sections.get("extraction")),
    )


def load_config(path=None) -> ProposalConfig:
    """Load proposal_config.yaml, falling back to defaults when absent."""
    config_path = Path(path) if path else default_config_path()
    if not config_path.exists():
        logger.info("Proposal config not found at %s, using defaults", config_path)
        return ProposalConfig()
    try:
        with open(config_path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Cannot parse {config_path}: {exc}",
                          {"path": str(config_path)}) from exc
    if data is None:
        return ProposalConfig()
    config = config_from_dict(data)
    logger.debug("Loaded proposal config from %s", config_path)
    return config
