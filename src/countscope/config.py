"""
Configuration file support for the countscope pipeline.

Supports YAML and JSON config files with CLI argument override. Relative
paths in a config file are resolved against the directory holding the
file, never against the working directory.

Example (YAML)::

    inputs:
      tx2gene: annotation/tx2gene.tsv
      gene_names: annotation/gene_names.tsv
      samples: samples.tsv
      quant_dir: salmon/
      quant_format: salmon
    samples:
      id_col: run
      group_col: sample
      provenance_col: lane
      factors:
        genotype: WT
        cell_cycle: [cc12, cc13, cc14]
    filter:
      min_count: 1
      min_samples: 2
    normalization:
      method: vst
    report:
      genes: [zld, FBgn0000490]
      reference_levels:
        Genotype: WT
        Cell_Cycle: cc12
    output:
      directory: results/
"""

from __future__ import annotations

import json
from argparse import Namespace
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from countscope.io.formats import PRESETS
from countscope.stats.normalization import NormalizationMethod, build_design

__all__ = [
    'InputsConfig',
    'SampleConfig',
    'FilterConfig',
    'NormalizationConfig',
    'ProjectionConfig',
    'ReportConfig',
    'OutputConfig',
    'PipelineConfig',
    'load_config',
    'load_pipeline_config',
    'validate_config',
    'merge_config_with_args',
]

LINKAGE_METHODS = ("complete", "average", "single", "ward")
FIGURE_FORMATS = ("png", "pdf", "svg")
STYLES = ("paper", "presentation", "notebook")


@dataclass
class InputsConfig:
    """Input files."""
    tx2gene: Optional[Path] = None
    gene_names: Optional[Path] = None
    samples: Optional[Path] = None
    quant_dir: Optional[Path] = None
    quant_format: str = "salmon"
    quant_dir_col: Optional[str] = None


@dataclass
class SampleConfig:
    """Sample sheet interpretation."""
    id_col: str = "run"
    group_col: Optional[str] = None
    provenance_col: Optional[str] = None
    factors: Dict[str, Any] = field(default_factory=dict)


@dataclass
class FilterConfig:
    """Low-count filter thresholds."""
    min_count: float = 1
    min_samples: int = 2


@dataclass
class NormalizationConfig:
    """Size factors and variance stabilization."""
    method: str = "vst"
    design: Optional[str] = None
    blind: bool = True
    fit_type: str = "parametric"

    def resolved_design(self, factors: Dict[str, Any]) -> str:
        """Explicit design, or all factors with their full interaction."""
        return self.design or build_design(list(factors))


@dataclass
class ProjectionConfig:
    """Distances, clustering and PCA."""
    n_top: int = 3000
    n_components: int = 2
    linkage: str = "complete"
    heatmap_genes: int = 50


@dataclass
class ReportConfig:
    """Gene-level report."""
    genes: List[str] = field(default_factory=list)
    id_fields: List[str] = field(default_factory=lambda: ["Genotype", "Cell_Cycle", "Replicate"])
    delimiter: str = "_"
    reference_levels: Dict[str, Any] = field(default_factory=dict)
    matrix: str = "normalized"


@dataclass
class OutputConfig:
    """Where and how results are written."""
    directory: Path = Path("results")
    format: str = "png"
    dpi: int = 300
    style: str = "paper"
    palette: str = "default"


_SECTIONS = {
    "inputs": InputsConfig,
    "samples": SampleConfig,
    "filter": FilterConfig,
    "normalization": NormalizationConfig,
    "projection": ProjectionConfig,
    "report": ReportConfig,
    "output": OutputConfig,
}

_PATH_FIELDS = {
    "inputs": ("tx2gene", "gene_names", "samples", "quant_dir"),
    "output": ("directory",),
}


@dataclass
class PipelineConfig:
    """
    Complete configuration for `countscope run`.

    One sub-config per pipeline stage; see the module docstring for the
    file layout.
    """
    inputs: InputsConfig = field(default_factory=InputsConfig)
    samples: SampleConfig = field(default_factory=SampleConfig)
    filter: FilterConfig = field(default_factory=FilterConfig)
    normalization: NormalizationConfig = field(default_factory=NormalizationConfig)
    projection: ProjectionConfig = field(default_factory=ProjectionConfig)
    report: ReportConfig = field(default_factory=ReportConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base_dir: Optional[Path] = None) -> "PipelineConfig":
        """
        Build the config tree from a nested dictionary.

        Parameters:
            data: Mapping of section name -> mapping of field values
            base_dir: Directory relative paths are resolved against
                (None keeps them as given)

        Raises:
            ValueError: On unknown sections or fields
        """
        unknown = [key for key in data if key not in _SECTIONS]
        if unknown:
            raise ValueError(
                f"Unknown config sections {unknown}. Valid: {', '.join(_SECTIONS)}"
            )

        sections = {}
        for name, section_cls in _SECTIONS.items():
            values = dict(data.get(name) or {})
            valid = {f.name for f in fields(section_cls)}
            bad = [key for key in values if key not in valid]
            if bad:
                raise ValueError(
                    f"Unknown fields {bad} in config section '{name}'. "
                    f"Valid: {', '.join(sorted(valid))}"
                )
            section = section_cls(**values)
            for key in _PATH_FIELDS.get(name, ()):
                value = getattr(section, key)
                if value is not None:
                    path = Path(value).expanduser()
                    if base_dir is not None and not path.is_absolute():
                        path = Path(base_dir) / path
                    setattr(section, key, path)
            sections[name] = section

        return cls(**sections)

    def to_dict(self) -> Dict[str, Any]:
        """Plain nested dictionary (paths as strings), for the run manifest."""
        def convert(value):
            if isinstance(value, Path):
                return str(value)
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            if isinstance(value, (list, tuple)):
                return [convert(v) for v in value]
            return value
        return convert(asdict(self))


def load_config(config_path: Path) -> Dict[str, Any]:
    """
    Load configuration from YAML or JSON file.

    Parameters:
        config_path: Path to config file (.yaml, .yml, or .json)

    Returns:
        Dictionary with configuration values

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If file format is unsupported or invalid
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    suffix = config_path.suffix.lower()
    if suffix not in ('.yaml', '.yml', '.json'):
        raise ValueError(
            f"Unsupported config format: {suffix}. Use .yaml, .yml, or .json"
        )

    try:
        with open(config_path, 'r') as f:
            if suffix == '.json':
                config = json.load(f)
            else:
                config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in config file: {e}") from e
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in config file: {e}") from e

    if config is None:
        return {}

    if not isinstance(config, dict):
        raise ValueError("Config file must contain a dictionary/mapping at top level")

    return config


def load_pipeline_config(config_path: Path) -> PipelineConfig:
    """Load a config file into a PipelineConfig, paths relative to the file."""
    config_path = Path(config_path)
    return PipelineConfig.from_dict(load_config(config_path), base_dir=config_path.parent)


def validate_config(config: PipelineConfig, require_inputs: bool = True) -> None:
    """
    Validate configuration values.

    Parameters:
        config: Configuration to check
        require_inputs: Require the annotation, sample sheet and quant
            directory paths to be set

    Raises:
        ValueError: If configuration is invalid
    """
    if require_inputs:
        missing = [
            name for name in ("tx2gene", "samples", "quant_dir")
            if getattr(config.inputs, name) is None
        ]
        if missing:
            raise ValueError(f"Missing required inputs: {', '.join(missing)}")

    if config.inputs.quant_format not in PRESETS:
        raise ValueError(
            f"Invalid quant format '{config.inputs.quant_format}'. "
            f"Choose from: {', '.join(PRESETS)}"
        )

    valid_methods = [m.value for m in NormalizationMethod]
    if config.normalization.method not in valid_methods:
        raise ValueError(
            f"Invalid normalization method '{config.normalization.method}'. "
            f"Choose from: {', '.join(valid_methods)}"
        )
    if config.normalization.fit_type not in ("parametric", "mean"):
        raise ValueError(
            f"Invalid fit type '{config.normalization.fit_type}'. Choose from: parametric, mean"
        )

    min_count = config.filter.min_count
    if not isinstance(min_count, (int, float)) or min_count < 0:
        raise ValueError(f"filter.min_count must be a non-negative number, got: {min_count}")
    min_samples = config.filter.min_samples
    if not isinstance(min_samples, int) or min_samples < 1:
        raise ValueError(f"filter.min_samples must be a positive integer, got: {min_samples}")

    for name in ("n_top", "n_components", "heatmap_genes"):
        value = getattr(config.projection, name)
        if not isinstance(value, int) or value < 1:
            raise ValueError(f"projection.{name} must be a positive integer, got: {value}")
    if config.projection.heatmap_genes < 2:
        raise ValueError("projection.heatmap_genes must be at least 2")
    if config.projection.linkage not in LINKAGE_METHODS:
        raise ValueError(
            f"Invalid linkage '{config.projection.linkage}'. "
            f"Choose from: {', '.join(LINKAGE_METHODS)}"
        )

    if config.report.matrix not in ("normalized", "transformed"):
        raise ValueError(
            f"report.matrix must be 'normalized' or 'transformed', got: {config.report.matrix}"
        )
    if not config.report.id_fields:
        raise ValueError("report.id_fields must name at least one field")

    if config.output.format not in FIGURE_FORMATS:
        raise ValueError(
            f"Invalid figure format '{config.output.format}'. "
            f"Choose from: {', '.join(FIGURE_FORMATS)}"
        )
    if config.output.style not in STYLES:
        raise ValueError(
            f"Invalid style '{config.output.style}'. Choose from: {', '.join(STYLES)}"
        )
    if not isinstance(config.output.dpi, int) or config.output.dpi <= 0:
        raise ValueError(f"output.dpi must be a positive integer, got: {config.output.dpi}")


def _merge_value(cli_value: Any, config_value: Any) -> Any:
    """
    Merge a single config value with a CLI argument.

    Rules:
    - CLI args override config when explicitly set (not None)
    - Otherwise the config value stands
    """
    if cli_value is not None:
        return cli_value
    return config_value


# CLI argument -> (config section, field)
_ARG_MAPPINGS = {
    'output': ('output', 'directory'),
    'min_count': ('filter', 'min_count'),
    'min_samples': ('filter', 'min_samples'),
    'n_top': ('projection', 'n_top'),
    'method': ('normalization', 'method'),
    'linkage': ('projection', 'linkage'),
    'genes': ('report', 'genes'),
    'format': ('output', 'format'),
}


def merge_config_with_args(config: PipelineConfig, args: Namespace) -> PipelineConfig:
    """
    Apply explicitly given CLI arguments on top of a config.

    Priority (highest to lowest):
    1. Explicitly provided CLI arguments (argparse default None = not given)
    2. Config file values
    3. Dataclass defaults

    Returns:
        New PipelineConfig; the input is not modified

    Examples:
        >>> config = load_pipeline_config(Path("pipeline.yaml"))
        >>> args = parser.parse_args(["--config", "pipeline.yaml", "--min-samples", "3"])
        >>> merged = merge_config_with_args(config, args)
        >>> merged.filter.min_samples
        3
    """
    merged = PipelineConfig.from_dict(config.to_dict())
    for arg_name, (section, key) in _ARG_MAPPINGS.items():
        cli_value = getattr(args, arg_name, None)
        if cli_value is None:
            continue
        if key == 'directory':
            cli_value = Path(cli_value)
        target = getattr(merged, section)
        setattr(target, key, _merge_value(cli_value, getattr(target, key)))
    return merged
