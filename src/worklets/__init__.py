"""Package functions for execution in a secondary, isolated interpreter."""

# Capture analysis
from worklets.closure import CapturedBinding as CapturedBinding
from worklets.closure import CaptureSet as CaptureSet
from worklets.closure import collect_captured_bindings as collect_captured_bindings

# Directive
from worklets.directive import WORKLET_DIRECTIVE as WORKLET_DIRECTIVE
from worklets.directive import remove_worklet_directive as remove_worklet_directive

# Errors
from worklets.errors import PreconditionError as PreconditionError
from worklets.errors import StructuralAssertionError as StructuralAssertionError
from worklets.errors import SynthesisError as SynthesisError
from worklets.errors import WorkletError as WorkletError

# Factory
from worklets.factory import WorkletFactory as WorkletFactory
from worklets.factory import make_worklet_factory as make_worklet_factory

# Function model
from worklets.function import SourceLocation as SourceLocation
from worklets.function import WorkletFunction as WorkletFunction
from worklets.hashing import worklet_hash as worklet_hash

# Runtime marker
from worklets.marker import worklet as worklet

# Metadata
from worklets.metadata import InitData as InitData
from worklets.metadata import build_init_data as build_init_data
from worklets.naming import make_worklet_name as make_worklet_name

# Configuration
from worklets.options import WorkletOptions as WorkletOptions

# Module transform
from worklets.plugin import TransformResult as TransformResult
from worklets.plugin import WorkletTransformer as WorkletTransformer
from worklets.plugin import transform_file as transform_file
from worklets.plugin import transform_module as transform_module
from worklets.plugin import transform_source as transform_source

# Synthesis
from worklets.synthesis import SynthesizedSource as SynthesizedSource
from worklets.synthesis import synthesize as synthesize
from worklets.unit import CompilationUnit as CompilationUnit
from worklets.version import __version__ as __version__
