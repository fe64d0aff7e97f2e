"""pinst – point instancer cooking for editable scene graphs.

This package contains the components that translate a point instancer into
scene graph locations:
- motion sample resolution and time-key reversal (core.timing)
- per-instance transform batches (core.transforms) [reference numpy computer]
- immutable attribute maps with time-keyed buffers (core.attrmap)
- instancer reader producing instancer / sources / instances maps (core.reader)
- the cook state machine (core.assembler)
- an in-memory scene tree host and YAML/NPZ writers (core.scenegraph, core.exporter)
"""

from .core.timing import MotionSample, resolve_motion_samples, reverse_time_sample
from .core.attrmap import AttributeMap, AttributeMapBuilder, TimeSampledValue
from .core.instancer import PointInstancer, SampledAttribute, load_instancer
from .core.transforms import TransformBatchComputer, PointInstancerTransformComputer
from .core.reader import InstancerReader, PointInstancerReader
from .core.host import (ChildDescriptor, ChildKind, HostInterface,
                        InvocationContext, RecordingInterface)
from .core.assembler import AssemblerState, CookResult, OutputAssembler, cook_point_instancer
from .core.scenegraph import SceneGraphHost, SceneNode
from .core.exporter import NpzWriter, YamlWriter
