from __future__ import annotations

from ..config import CookConfig
from ..core.assembler import OutputAssembler
from ..core.exporter import NpzWriter, YamlWriter
from ..core.host import InvocationContext
from ..core.instancer import PointInstancer, load_instancer
from ..core.reader import InstancerReader, PointInstancerReader
from ..core.transforms import PointInstancerTransformComputer, TransformBatchComputer


def build_instancer(cfg: CookConfig) -> PointInstancer:
    return load_instancer(cfg.instancer.path)


def build_context(cfg: CookConfig, instancer: PointInstancer) -> InvocationContext:
    time_cfg = cfg.time
    location = f"{cfg.location.rstrip('/')}/{instancer.name}"
    return InvocationContext(
        current_time=time_cfg.current_time,
        motion_sample_times=tuple(time_cfg.motion_sample_times),
        motion_backward=time_cfg.motion_backward,
        output_location_path=location,
    )


def build_computer(cfg: CookConfig) -> TransformBatchComputer:
    computer_cfg = cfg.computer
    if computer_cfg.kind == "reference":
        return PointInstancerTransformComputer()
    raise ValueError(f"Unsupported transform computer: {computer_cfg.kind}")


def build_reader(cfg: CookConfig) -> InstancerReader:
    return PointInstancerReader()


def build_assembler(cfg: CookConfig) -> OutputAssembler:
    return OutputAssembler(computer=build_computer(cfg), reader=build_reader(cfg))


def build_writer(cfg: CookConfig):
    out_cfg = cfg.output
    format_lower = out_cfg.format.lower()
    if format_lower == "yaml":
        return YamlWriter(str(out_cfg.path))
    if format_lower == "npz":
        return NpzWriter(str(out_cfg.path))
    raise ValueError(f"Unsupported output format: {out_cfg.format}")
