"""
common/config.py – Configuration of pair quantities and their evaluators.

Configuration is a nested mapping, typically read from YAML::

    accelerator: cpu
    evaluator:
      type: OPTIMIZED
      usefullsum: false
      ncpu: 1
      cpuindex: 0
    quantity:
      name: rdf
      rmax: 10.0

It can be loaded with plain PyYAML (``from_yaml``) or with OmegaConf, which
adds interpolation and command-line style overrides (``load``).
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

import yaml
from omegaconf import DictConfig, OmegaConf

from torchpairsum.common.utils import DEFAULT_CONFIG_PATH, resolve_device


def _check_keys(cls, cfg: Dict[str, Any], section: str) -> None:
    known = {f.name for f in dataclasses.fields(cls)}
    unknown = sorted(set(cfg) - known)
    if unknown:
        raise ValueError(f"Unknown {section} configuration keys: {', '.join(unknown)}")


@dataclass
class EvaluatorConfig:
    type: str = "OPTIMIZED"
    usefullsum: bool = False
    ncpu: int = 1
    cpuindex: int = 0

    def __post_init__(self):
        from torchpairsum.engine.chunker import check_worker_count
        from torchpairsum.engine.evaluator import parse_evaluator_type

        parse_evaluator_type(self.type)
        check_worker_count(self.ncpu)
        if not 0 <= self.cpuindex < self.ncpu:
            raise ValueError(f"cpuindex {self.cpuindex} must be in range [0, {self.ncpu}).")

    @classmethod
    def from_dict(cls, cfg: Dict[str, Any]) -> "EvaluatorConfig":
        _check_keys(cls, cfg, "evaluator")
        return cls(**cfg)


@dataclass
class QuantityConfig:
    name: str = "rdf"
    rmin: float = 0.0
    rmax: float = 10.0
    rstep: float = 0.01
    kernel_width: float = 0.05
    qmin: float = 0.0
    qmax: float = 10.0
    qstep: float = 0.05
    debye_precision: float = 1e-6
    scattering_lengths: Optional[Dict[str, float]] = None

    def __post_init__(self):
        if self.name not in quantity_registry():
            raise ValueError(
                f"Unknown quantity {self.name!r}, expected one of {sorted(quantity_registry())}."
            )

    @classmethod
    def from_dict(cls, cfg: Dict[str, Any]) -> "QuantityConfig":
        _check_keys(cls, cfg, "quantity")
        return cls(**cfg)


def quantity_registry() -> Dict[str, type]:
    from torchpairsum.model.bondcalculator import BondCalculator, BondCounter
    from torchpairsum.model.debye import DebyeSum
    from torchpairsum.model.rdf import RDFCalculator

    return {
        "bondcounter": BondCounter,
        "bondcalculator": BondCalculator,
        "debyesum": DebyeSum,
        "rdf": RDFCalculator,
    }


@dataclass
class PairSumConfig:
    accelerator: str = "cpu"
    evaluator: EvaluatorConfig = field(default_factory=EvaluatorConfig)
    quantity: QuantityConfig = field(default_factory=QuantityConfig)

    @classmethod
    def from_dict(cls, cfg: Dict[str, Any]) -> "PairSumConfig":
        _check_keys(cls, cfg, "top-level")
        return cls(
            accelerator=cfg.get("accelerator", "cpu"),
            evaluator=EvaluatorConfig.from_dict(dict(cfg.get("evaluator") or {})),
            quantity=QuantityConfig.from_dict(dict(cfg.get("quantity") or {})),
        )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "PairSumConfig":
        with open(path, "r") as f:
            cfg: Dict[str, Any] = yaml.safe_load(f) or {}
        return cls.from_dict(cfg)

    @classmethod
    def from_omegaconf(cls, cfg: DictConfig) -> "PairSumConfig":
        return cls.from_dict(OmegaConf.to_container(cfg, resolve=True))

    @classmethod
    def load(cls, path: str | Path = DEFAULT_CONFIG_PATH, overrides: Sequence[str] = ()) -> "PairSumConfig":
        """Load YAML through OmegaConf and apply ``key=value`` overrides."""
        cfg = OmegaConf.load(path)
        if overrides:
            cfg = OmegaConf.merge(cfg, OmegaConf.from_dotlist(list(overrides)))
        return cls.from_omegaconf(cfg)

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

    def create_quantity(self):
        """Construct the configured pair quantity."""
        q = self.quantity
        kwargs: Dict[str, Any] = dict(
            evaluator=self.evaluator.type,
            device=resolve_device(self.accelerator),
        )
        if q.name == "debyesum":
            kwargs.update(qmin=q.qmin, qmax=q.qmax, qstep=q.qstep,
                          debye_precision=q.debye_precision,
                          scattering_lengths=q.scattering_lengths)
        elif q.name == "rdf":
            kwargs.update(rmin=q.rmin, rmax=q.rmax, rstep=q.rstep,
                          kernel_width=q.kernel_width,
                          scattering_lengths=q.scattering_lengths)
        else:
            kwargs.update(rmin=q.rmin, rmax=q.rmax)
        pq = quantity_registry()[q.name](**kwargs)
        pq.set_flags(usefullsum=self.evaluator.usefullsum)
        pq.setup_parallel_run(self.evaluator.cpuindex, self.evaluator.ncpu)
        return pq
