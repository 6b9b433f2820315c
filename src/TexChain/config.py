"""Define typed configuration models for the pipeline and its nodes.

Use `PipelineConfig` to load, validate, and persist runtime settings and the
ordered node list. Each node entry is a mapping with a ``type`` key plus the
fields of the matching parameter dataclass.
"""

import copy
import dataclasses
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Type

import yaml

logger = logging.getLogger("texchain.config")


def _identity_curve() -> List[List[float]]:
    return [[0.0, 0.0], [1.0, 1.0]]


@dataclass
class NodeParams:
    """Parameters shared by every processing node."""

    name: str = "Node"
    enabled: bool = True
    mask_strength: float = 1.0
    invert_mask: bool = False

    def problems(self) -> List[str]:
        """Return human-readable validation problems (empty when valid)."""
        errors = []
        if not (0.0 <= self.mask_strength <= 1.0):
            errors.append("mask_strength must be in [0, 1]")
        return errors


@dataclass
class ColorCorrectionParams(NodeParams):
    """Hue / saturation / brightness / gamma adjustment."""

    name: str = "ColorCorrection"
    hue_shift: float = 0.0      # degrees, wraps into [-180, 180]
    saturation: float = 1.0     # 0 ~ 2
    brightness: float = 1.0     # 0 ~ 2
    gamma: float = 1.0          # 0.1 ~ 3


BLEND_MODES = (
    "normal", "multiply", "add", "screen", "overlay", "hdr_add", "hdr_multiply",
)


@dataclass
class BlendParams(NodeParams):
    """Composite a second image over the pipeline buffer."""

    name: str = "Blend"
    blend_mode: str = "normal"
    strength: float = 1.0       # 0 ~ 1
    # Unclamped RGBA multiplier for the HDR modes.
    hdr_color: List[float] = field(default_factory=lambda: [1.0, 1.0, 1.0, 1.0])
    blend_image: str = ""       # optional path resolved by the loader

    def problems(self) -> List[str]:
        errors = super().problems()
        if self.blend_mode not in BLEND_MODES:
            errors.append(
                f"blend_mode must be one of {list(BLEND_MODES)}, got '{self.blend_mode}'"
            )
        if len(self.hdr_color) not in (3, 4):
            errors.append("hdr_color must have 3 or 4 components")
        return errors


SHARPEN_MODES = ("sharpen", "blur")


@dataclass
class SharpenParams(NodeParams):
    """Unsharp-mask sharpening or Gaussian blur."""

    name: str = "Sharpen/Blur"
    mode: str = "sharpen"
    strength: float = 1.0       # sharpen: 0 ~ 2, blur: 0 ~ 1
    kernel_size: int = 5        # 3, 5, 7, 9

    def problems(self) -> List[str]:
        errors = super().problems()
        if self.mode not in SHARPEN_MODES:
            errors.append(f"mode must be one of {list(SHARPEN_MODES)}, got '{self.mode}'")
        return errors


@dataclass
class ToneCurveParams(NodeParams):
    """Per-channel and combined tone curves."""

    name: str = "ToneCurve"
    rgb_curve: List[List[float]] = field(default_factory=_identity_curve)
    red_curve: List[List[float]] = field(default_factory=_identity_curve)
    green_curve: List[List[float]] = field(default_factory=_identity_curve)
    blue_curve: List[List[float]] = field(default_factory=_identity_curve)
    use_rgb_curve: bool = True
    use_red_curve: bool = False
    use_green_curve: bool = False
    use_blue_curve: bool = False
    interpolation: str = "pchip"  # "pchip" | "linear"
    lut_size: int = 256

    def problems(self) -> List[str]:
        errors = super().problems()
        if self.interpolation not in ("pchip", "linear"):
            errors.append(
                f"interpolation must be 'pchip' or 'linear', got '{self.interpolation}'"
            )
        if self.lut_size < 2:
            errors.append("lut_size must be >= 2")
        for curve_name in ("rgb_curve", "red_curve", "green_curve", "blue_curve"):
            points = getattr(self, curve_name)
            if not points or any(
                not isinstance(p, (list, tuple)) or len(p) != 2 for p in points
            ):
                errors.append(f"{curve_name} must be a non-empty list of [x, y] pairs")
        return errors


BOUNDARY_KINDS = ("texture", "mesh")


@dataclass
class UVIslandBlurParams(NodeParams):
    """Separable Gaussian blur that does not cross UV seams."""

    name: str = "UVIslandBlur"
    blur_radius: int = 5        # 1 ~ 20
    blur_sigma: float = 2.0     # 0.5 ~ 10
    boundary: str = "texture"   # "texture" | "mesh"
    boundary_threshold: float = 0.1
    dilation_radius: int = 5
    mesh_path: str = ""         # used when boundary == "mesh"
    reference_image: str = ""   # optional texture for boundary detection

    def problems(self) -> List[str]:
        errors = super().problems()
        if self.boundary not in BOUNDARY_KINDS:
            errors.append(
                f"boundary must be one of {list(BOUNDARY_KINDS)}, got '{self.boundary}'"
            )
        if self.boundary_threshold < 0:
            errors.append("boundary_threshold must be >= 0")
        if self.dilation_radius < 0:
            errors.append("dilation_radius must be >= 0")
        return errors


NODE_PARAM_TYPES: Dict[str, Type[NodeParams]] = {
    "color_correction": ColorCorrectionParams,
    "blend": BlendParams,
    "sharpen": SharpenParams,
    "tone_curve": ToneCurveParams,
    "uv_island_blur": UVIslandBlurParams,
}


def parse_node_params(entry: dict, _path: str = "") -> NodeParams:
    """Build a parameter dataclass from one node entry mapping."""
    where = _path.rstrip(".") or "node"
    if not isinstance(entry, dict):
        raise ValueError(f"{where}: entry must be a mapping, got {type(entry).__name__}")
    data = dict(entry)
    node_type = data.pop("type", None)
    if node_type not in NODE_PARAM_TYPES:
        raise ValueError(
            f"{where}: unknown node type '{node_type}' "
            f"(valid: {sorted(NODE_PARAM_TYPES)})"
        )
    params = NODE_PARAM_TYPES[node_type]()
    _merge_dict_to_dataclass(params, data, _path)
    return params


_SUPPORTED_CONFIG_VERSION = 1


@dataclass
class PipelineConfig:
    """Master pipeline configuration."""

    config_version: int = 1
    log_level: str = "INFO"
    max_output_resolution: int = 0   # 0 = keep source resolution
    output_bits: int = 8
    max_image_pixels: int = 67108864  # 8192x8192
    mask_image: str = ""
    nodes: List[Dict] = field(default_factory=list)

    @classmethod
    def from_yaml(cls, path: str) -> "PipelineConfig":
        """Load pipeline configuration from YAML or return defaults."""
        if not os.path.exists(path):
            logger.info("Config file '%s' not found. Using defaults.", path)
            config = cls()
            config.validate()
            return config
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(
                f"Failed to parse YAML config '{path}': {exc}"
            ) from exc
        if not isinstance(data, dict):
            raise ValueError(
                f"Config file '{path}' must contain a YAML mapping, "
                f"got {type(data).__name__}"
            )
        yaml_version = data.get("config_version", 1)
        if isinstance(yaml_version, int) and yaml_version > _SUPPORTED_CONFIG_VERSION:
            logger.warning(
                "Config file '%s' has config_version=%d, but this build only "
                "supports up to version %d. Some settings may be ignored.",
                path, yaml_version, _SUPPORTED_CONFIG_VERSION,
            )
        config = cls()
        _merge_dict_to_dataclass(config, data)
        try:
            config.validate()
        except ValueError as exc:
            raise ValueError(f"{path}: {exc}") from exc
        return config

    def to_yaml(self, path: str):
        """Write pipeline configuration to a YAML file."""
        import threading as _th
        data = dataclasses.asdict(self)
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        ext = os.path.splitext(path)[1]
        tmp_path = f"{path}.tmp.{os.getpid()}.{_th.get_ident()}{ext}"
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
            os.replace(tmp_path, path)
        finally:
            if os.path.exists(tmp_path):
                try:
                    os.remove(tmp_path)
                except OSError:
                    pass

    def node_params(self) -> List[NodeParams]:
        """Parse every node entry into its parameter dataclass."""
        return [
            parse_node_params(entry, f"nodes[{idx}].")
            for idx, entry in enumerate(self.nodes)
        ]

    def validate(self):
        """Validate configuration values. Raises ValueError on invalid config."""
        errors = []

        valid_log_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if str(self.log_level).upper() not in valid_log_levels:
            errors.append(
                f"log_level must be one of {sorted(valid_log_levels)}, "
                f"got '{self.log_level}'"
            )
        if self.max_output_resolution < 0:
            errors.append("max_output_resolution must be >= 0 (0 = unlimited)")
        if self.output_bits not in (8, 16):
            errors.append(f"output_bits must be 8 or 16, got {self.output_bits}")
        if self.max_image_pixels < 0:
            errors.append("max_image_pixels must be >= 0 (0 = unlimited)")
        if not isinstance(self.nodes, list):
            errors.append("nodes must be a list of node mappings")
        else:
            for idx, entry in enumerate(self.nodes):
                prefix = f"nodes[{idx}]"
                try:
                    params = parse_node_params(entry, f"{prefix}.")
                except ValueError as exc:
                    errors.append(str(exc))
                    continue
                errors.extend(f"{prefix}.{problem}" for problem in params.problems())

        if errors:
            raise ValueError(
                "Configuration validation failed:\n" +
                "\n".join(f"  - {e}" for e in errors)
            )


def _merge_dict_to_dataclass(obj, data: dict, _path: str = ""):
    for key, value in data.items():
        full_key = f"{_path}{key}"
        if not hasattr(obj, key):
            logger.warning("Unknown config key ignored: '%s'", full_key)
            continue
        field_val = getattr(obj, key)
        if dataclasses.is_dataclass(field_val) and isinstance(value, dict):
            _merge_dict_to_dataclass(field_val, value, f"{full_key}.")
            continue
        # Reject None for fields with non-None defaults
        if value is None and field_val is not None:
            logger.warning(
                "Config key '%s' is null but field default is %s. Using default value.",
                full_key, type(field_val).__name__,
            )
            continue
        expected_type = type(field_val)
        # Allow int->float and exact float->int promotion; bool is never numeric here.
        if (field_val is not None
                and not isinstance(value, expected_type)
                and not (expected_type is float
                         and isinstance(value, int) and not isinstance(value, bool))
                and not (expected_type is int
                         and isinstance(value, float)
                         and value == int(value))):
            logger.warning(
                "Config type mismatch for '%s': expected %s, got %s (%r). Using default value.",
                full_key, expected_type.__name__, type(value).__name__, value,
            )
            continue
        if expected_type is int and isinstance(value, float):
            value = int(value)
        elif expected_type is float and isinstance(value, int):
            value = float(value)
        setattr(obj, key, copy.deepcopy(value))
