from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .attrmap import AttributeMap, AttributeMapBuilder
from .host import SKIP_ALL_CHILDREN, ChildKind, HostInterface, InvocationContext
from .instancer import PointInstancer
from .reader import InstancerReader, PointInstancerReader
from .timing import TimeReversal, absolute_times, resolve_motion_samples, reverse_time_sample
from .transforms import PointInstancerTransformComputer, TransformBatchComputer
from .utils import get_logger

_log = get_logger()

INSTANCE_MATRIX = "instanceMatrix"
NO_SAMPLES_MESSAGE = "Could not compute sample/topology-invarying instance transform matrix"


class AssemblerState(str, Enum):
    START = "start"
    COMPUTING_TRANSFORMS = "computing_transforms"
    ERROR_NO_SAMPLES = "error_no_samples"
    READING_INSTANCER = "reading_instancer"
    ERROR_FROM_READER = "error_from_reader"
    BUILDING_OUTPUTS = "building_outputs"
    ERROR_INVALID_BUILD = "error_invalid_build"
    EMITTING_CHILDREN = "emitting_children"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = {
    AssemblerState.ERROR_NO_SAMPLES,
    AssemblerState.ERROR_FROM_READER,
    AssemblerState.ERROR_INVALID_BUILD,
    AssemblerState.EMITTING_CHILDREN,
}


@dataclass
class CookResult:
    """Outcome of one invocation: visited states plus what was emitted."""

    states: List[AssemblerState] = field(default_factory=list)
    requested_samples: int = 0
    produced_samples: int = 0
    num_instances: int = 0
    intermediate_children: int = 0
    final_builds: int = 0

    @property
    def state(self) -> AssemblerState:
        return self.states[-1] if self.states else AssemblerState.START

    @property
    def ok(self) -> bool:
        return self.state is AssemblerState.EMITTING_CHILDREN

    def enter(self, state: AssemblerState) -> None:
        self.states.append(state)


class OutputAssembler:
    """Cooks a point instancer into attributes and child locations on a host.

    Sequence: resolve motion samples, compute instance matrices, flatten them
    into a time-keyed ``instanceMatrix`` input, run the reader, apply the
    instancer attributes, then either stop (reported error or silent
    soft-exit) or create one intermediate child per instance source and a
    single final build for the instance array.

    No state survives between calls to :meth:`cook`.
    """

    def __init__(
        self,
        computer: Optional[TransformBatchComputer] = None,
        reader: Optional[InstancerReader] = None,
        reverse: TimeReversal = reverse_time_sample,
    ) -> None:
        self.computer = computer or PointInstancerTransformComputer()
        self.reader = reader or PointInstancerReader()
        self.reverse = reverse

    def cook(
        self,
        instancer: PointInstancer,
        context: InvocationContext,
        interface: HostInterface,
    ) -> CookResult:
        result = CookResult()
        result.enter(AssemblerState.START)

        # -- transforms --
        result.enter(AssemblerState.COMPUTING_TRANSFORMS)
        samples = resolve_motion_samples(
            context.current_time,
            context.motion_sample_times,
            motion_backward=context.motion_backward,
            reverse=self.reverse,
        )
        result.requested_samples = len(samples)
        xform_samples, produced = self.computer.compute(
            instancer, absolute_times(samples), context.current_time
        )
        produced = min(int(produced), len(xform_samples), len(samples))
        result.produced_samples = produced
        if produced == 0:
            interface.set_attr("type", "error")
            interface.set_attr("errorMessage", NO_SAMPLES_MESSAGE)
            _log.warning("%s: %s", interface.output_location_path, NO_SAMPLES_MESSAGE)
            result.enter(AssemblerState.ERROR_NO_SAMPLES)
            return result

        num_instances = len(xform_samples[0])
        result.num_instances = num_instances
        input_attrs = AttributeMapBuilder()
        input_attrs.set("outputLocationPath", interface.output_location_path)
        for a in range(produced):
            # stored at the frame-relative key; reversed when motion is backward
            key = samples[a].key
            input_attrs.reserve(INSTANCE_MATRIX, key, num_instances)
            input_attrs.extend_time_keyed_samples(INSTANCE_MATRIX, key, xform_samples[a])
        input_map = input_attrs.build()

        # -- reader --
        result.enter(AssemblerState.READING_INSTANCER)
        instancer_attrs, sources_attrs, instances_attrs = self.reader.read(instancer, context, input_map)
        for name, value in instancer_attrs.build().items():
            interface.set_attr(name, value)

        if interface.get_output_attr("type") == "error":
            _log.warning(
                "%s: %s",
                interface.output_location_path,
                interface.get_output_attr("errorMessage") or "instancer reader reported an error",
            )
            result.enter(AssemblerState.ERROR_FROM_READER)
            return result

        # -- outputs --
        result.enter(AssemblerState.BUILDING_OUTPUTS)
        sources = sources_attrs.build()
        instances = instances_attrs.build()
        children = sources.get("c") if sources.is_valid else None
        if not instances.is_valid or not isinstance(children, AttributeMap):
            # Not an error: an instancer may legitimately have no prototypes or instances.
            _log.debug(
                "%s: nothing to instantiate (sources valid=%s, instances valid=%s)",
                interface.output_location_path, sources.is_valid, instances.is_valid,
            )
            result.enter(AssemblerState.ERROR_INVALID_BUILD)
            return result

        # -- children --
        result.enter(AssemblerState.EMITTING_CHILDREN)
        interface.set_attr(SKIP_ALL_CHILDREN, 1)
        op_args = interface.op_args
        for name, subtree in children.items():
            child_args = AttributeMapBuilder().update(op_args).set("staticScene", subtree).build()
            interface.create_child(name, ChildKind.INTERMEDIATE, child_args, context.child(name))
            result.intermediate_children += 1

        interface.execute_final_build(instances)
        result.final_builds = 1
        _log.debug(
            "%s: %d instances, %d sample(s), %d source(s)",
            interface.output_location_path, num_instances, produced, result.intermediate_children,
        )
        return result


def cook_point_instancer(
    instancer: PointInstancer,
    context: InvocationContext,
    interface: HostInterface,
    computer: Optional[TransformBatchComputer] = None,
    reader: Optional[InstancerReader] = None,
    reverse: TimeReversal = reverse_time_sample,
) -> CookResult:
    return OutputAssembler(computer=computer, reader=reader, reverse=reverse).cook(
        instancer, context, interface
    )
