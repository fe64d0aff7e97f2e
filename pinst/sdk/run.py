from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union

from ..config import CookConfig, load_config
from ..core.assembler import CookResult
from ..core.scenegraph import SceneGraphHost, SceneNode
from ..runtime.builders import (
    build_assembler,
    build_context,
    build_instancer,
    build_writer,
)


@dataclass(frozen=True)
class ConfigCookResult:
    """Summary of a cook driven by a configuration file."""

    result: CookResult
    root: SceneNode
    output_path: Path
    config: CookConfig


def cook_from_config(
    config: Union[str, Path, CookConfig],
    *,
    output: Optional[Path] = None,
    current_time: Optional[float] = None,
    motion_sample_times: Optional[Sequence[float]] = None,
    motion_backward: Optional[bool] = None,
) -> ConfigCookResult:
    """Cook the point instancer described by a configuration file or object.

    Parameters
    ----------
    config:
        Path to a YAML file or a pre-loaded :class:`~pinst.config.schema.CookConfig`.
    output:
        Optional override for the written scene tree. The extension drives the
        format (``.yaml``/``.yml`` or ``.npz``).
    current_time, motion_sample_times, motion_backward:
        Optional overrides for the ``time`` section of the configuration.

    Returns
    -------
    ConfigCookResult
        The assembler outcome, the cooked scene tree, the resolved output path
        and the configuration actually used.
    """

    cfg = load_config(config) if not isinstance(config, CookConfig) else config.model_copy(deep=True)

    if current_time is not None:
        cfg.time.current_time = float(current_time)
    if motion_sample_times is not None:
        cfg.time.motion_sample_times = [float(t) for t in motion_sample_times]
    if motion_backward is not None:
        cfg.time.motion_backward = bool(motion_backward)

    if output is not None:
        out_path = Path(output).resolve()
        ext = out_path.suffix.lower()
        if ext in {".yaml", ".yml"}:
            cfg.output.format = "yaml"
        elif ext == ".npz":
            cfg.output.format = "npz"
        else:
            raise ValueError(f"Unsupported output extension '{ext}'")
        cfg.output.path = out_path
    else:
        cfg.output.path = Path(cfg.output.path).resolve()

    instancer = build_instancer(cfg)
    context = build_context(cfg, instancer)
    host = SceneGraphHost(build_assembler(cfg))
    root, result = host.cook(instancer, context)

    writer = build_writer(cfg)
    try:
        writer.write_tree(root)
    finally:
        writer.close()

    return ConfigCookResult(result=result, root=root, output_path=Path(cfg.output.path), config=cfg)
