"""SpellEngine - wand-tip tracking and unistroke spell recognition."""

__version__ = "0.1.0"

from spell_engine.errors import Reason, SpellEngineError, InvalidTemplateError, ConfigError
from spell_engine.config import (
    SpellEngineConfig,
    LocatorConfig,
    CleanerConfig,
    RecognizerConfig,
    CaptureConfig,
    DisplayConfig,
)
from spell_engine.stroke import SamplePoint
from spell_engine.locator import FrameLocator, WandFix, map_to_canvas
from spell_engine.cleanup import StrokeCleaner, clean_stroke
from spell_engine.recognizer import GestureRecognizer, RecognitionResult, Template
from spell_engine.capture import StrokeCaptureEngine, CaptureState, CaptureEvent, EventType
from spell_engine.templates import TemplateRecord, TemplateStore, default_templates
from spell_engine.profiler import PipelineProfiler
from spell_engine.pipeline import WandPipeline, CursorUpdate, PipelineStats
from spell_engine.recorder import SessionRecorder, SessionPlayer, RecordedSample
