"""
The instrument engine: one explicit context object owning every component.

Input adapters (keyboard, mouse grid, MIDI pads, scripted scores) call the
trigger surface; a fixed-step loop calls ``tick`` once per frame and hands
the resulting RenderFrame to whatever draws it. Nothing here blocks.
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set, Tuple

import numpy as np

from chromakeys.audio import AudioEngine, SilentAudioEngine
from chromakeys.capture import FrameSource
from chromakeys.config import EngineConfig
from chromakeys.core.attractor import AttractorModel, AttractorUniforms, TriggerKind, TriggerOptions
from chromakeys.core.backend import ComputeBackend
from chromakeys.core.field import create_field
from chromakeys.core.fusion import FrameParameters, FusionContext, FusionInputs, ParameterFusion
from chromakeys.core.grid import (
    GRID_COLS,
    GRID_ROWS,
    cell_to_midi,
    drum_kind,
    drum_to_cell,
    is_sustain_note,
    midi_to_cell,
    snap_to_natural,
    validate_cell,
)
from chromakeys.core.levels import MicrophoneMeter
from chromakeys.core.motion import NEUTRAL_GESTURE, GestureState, MotionTracker
from chromakeys.core.profiles import profile_for_column
from chromakeys.errors import DeviceUnavailable, TransientRenderFailure
from chromakeys.sequencer import AmbientPlayer, Arpeggiator, NoteEvent

logger = logging.getLogger(__name__)

Cell = Tuple[int, int]


@dataclass(frozen=True)
class RenderFrame:
    """Everything a renderer needs for one tick."""

    index: int
    time: float
    parameters: FrameParameters
    attractor: AttractorUniforms
    positions: np.ndarray
    simulated: bool
    gesture: GestureState


Renderer = Callable[[RenderFrame], None]


class InstrumentEngine:
    """
    Owns the attractor, field, tracker, fusion and sequencers.

    Args:
        config: Engine configuration (defaults everywhere when omitted).
        audio: Sound backend; silent when omitted.
        backend: Compute backend for the field simulation.
        camera: Optional frame source polled once per tick.
        renderer: Optional callable receiving each RenderFrame.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        audio: Optional[AudioEngine] = None,
        backend: Optional[ComputeBackend] = None,
        camera: Optional[FrameSource] = None,
        renderer: Optional[Renderer] = None,
    ):
        self.cfg = config or EngineConfig()
        self.audio = audio or SilentAudioEngine()
        self.camera = camera
        self.renderer = renderer
        self.rng = np.random.default_rng(self.cfg.seed)

        self.attractor = AttractorModel(self.cfg.attractor)
        self.field = create_field(self.cfg.field, backend, self.cfg.seed)
        self.tracker = MotionTracker(self.cfg.motion)
        self.tracking_enabled = True
        self.fusion = ParameterFusion(self.cfg.fusion, self.cfg.smoothing, self.cfg.idle)
        inputs = self.cfg.inputs
        self.mic = MicrophoneMeter(inputs.mic_gate, inputs.mic_smoothing, inputs.mic_visual_scale)
        self._mic_fed = False

        self.arpeggiator = Arpeggiator(self.cfg.sequencer, self.rng)
        self.ambient = AmbientPlayer(self.cfg.sequencer, self.rng)

        # Held cells in press order -> midi note
        self.held: Dict[Cell, int] = {}
        self.sustain_pedal = False
        # Keyboard notes held by pitch -> cell they light
        self.held_notes: Dict[int, Cell] = {}
        self._ringing: Dict[Cell, int] = {}
        self._note_voices: Set[int] = set()
        self._pedal_voices: List[int] = []

        self.time = 0.0
        self.frame_index = 0
        self.render_failures = 0
        self.zoom = 1.0
        self.freeze_until = -math.inf
        self.last_double_tap = -math.inf
        self.sparkle_time = -math.inf
        self.pad_level = 0.0
        self.mouse_velocity = 0.0
        self.touch_intensity = 0.0

    # ------------------------------------------------------------------
    # Trigger surface
    # ------------------------------------------------------------------

    def _user_action(self) -> None:
        self.ambient.mark_user_action()
        self.fusion.interrupt_idle()

    def _visual_trigger(self, col: int, row: int, options: TriggerOptions) -> None:
        """Move the attractor and point the parameter targets at a column."""
        self.attractor.trigger_cell(col, row, options)
        self.fusion.apply_profile(profile_for_column(col), options.mix_target)

    def _cell_options(self, midi: int, velocity: float = 0.8) -> TriggerOptions:
        return TriggerOptions(
            kind=TriggerKind.CELL,
            strength=self.cfg.attractor.cell_strength,
            sustained=self.sustain_pedal or is_sustain_note(midi),
            velocity=velocity,
            mix_target=self.cfg.fusion.cell_mix,
        )

    def trigger_cell(self, col: int, row: int, options: Optional[TriggerOptions] = None) -> None:
        """Press a grid cell; it stays held until ``release_cell``."""
        validate_cell(col, row)
        self._user_action()
        midi = cell_to_midi(col, row)
        options = options or self._cell_options(midi)

        self.audio.trigger_note(midi, options.velocity, options.sustained)
        if options.sustained:
            self._ringing[(col, row)] = midi
        self._visual_trigger(col, row, options)

        self.held.pop((col, row), None)
        self.held[(col, row)] = midi
        self._held_changed(pressed=True)

    def release_cell(self, col: int, row: int) -> None:
        validate_cell(col, row)
        if self.held.pop((col, row), None) is None:
            return
        midi = self._ringing.pop((col, row), None)
        if midi is not None:
            self._release_voice(midi)
        self._held_changed(pressed=False)

    def _release_voice(self, midi: int) -> None:
        """Stop a ringing voice, or hand it to the pedal while the pedal is down."""
        if self.sustain_pedal and not is_sustain_note(midi):
            self._pedal_voices.append(midi)
        else:
            self.audio.release_note(midi)

    def trigger_drum(self, index: int, options: Optional[TriggerOptions] = None) -> None:
        """Hit a drum pad; drums light the middle row and are never held."""
        self._user_action()
        col, row = drum_to_cell(index)
        options = options or TriggerOptions(
            kind=TriggerKind.DRUM,
            strength=self.cfg.attractor.drum_strength,
            mix_target=self.cfg.fusion.drum_mix,
        )
        self.audio.trigger_drum(drum_kind(index))
        self.attractor.trigger_drum(index, options)
        self.fusion.apply_profile(profile_for_column(col), options.mix_target)

    def trigger_note(self, midi: int, velocity: float = 0.8, hold: bool = False) -> Cell:
        """
        Play a keyboard note; the visuals follow the note's grid cell.

        With ``hold`` the note joins the held chord until ``release_note``.
        """
        self._user_action()
        pitch = snap_to_natural(min(127, max(0, midi)))
        if hold and pitch in self.held_notes:
            self.release_note(pitch)
        cell = self._play_note(NoteEvent(pitch=pitch, velocity=velocity,
                                         sustained=self.sustain_pedal or is_sustain_note(pitch)))
        if hold:
            self.held_notes[pitch] = cell
            self._held_changed(pressed=True)
        return cell

    def release_note(self, midi: int) -> None:
        """Release a note pressed with ``trigger_note(..., hold=True)``."""
        pitch = snap_to_natural(min(127, max(0, midi)))
        if self.held_notes.pop(pitch, None) is None:
            return
        if pitch in self._note_voices:
            self._note_voices.discard(pitch)
            self._release_voice(pitch)
        self._held_changed(pressed=False)

    def _play_note(self, event: NoteEvent) -> Cell:
        pitch = snap_to_natural(min(127, max(0, event.pitch)))
        self.audio.trigger_note(pitch, event.velocity, event.sustained)
        if event.sustained:
            self._note_voices.add(pitch)
        col, row = midi_to_cell(pitch)
        if event.visual:
            options = TriggerOptions(
                kind=TriggerKind.NOTE,
                strength=self.cfg.attractor.cell_strength,
                sustained=event.sustained,
                velocity=event.velocity,
                mix_target=self.cfg.fusion.cell_mix,
            )
            self._visual_trigger(col, row, options)
        return col, row

    def burst(self, col: Optional[int] = None, row: Optional[int] = None) -> Cell:
        """Double-tap explosion on a cell (random when omitted)."""
        self._user_action()
        if col is None:
            col = int(self.rng.integers(GRID_COLS))
        if row is None:
            row = int(self.rng.integers(GRID_ROWS))
        validate_cell(col, row)

        midi = cell_to_midi(col, row)
        self.audio.trigger_note(midi, 0.8, False)
        self._visual_trigger(col, row, TriggerOptions(
            kind=TriggerKind.BURST,
            strength=self.cfg.attractor.burst_strength,
            mix_target=self.cfg.fusion.burst_mix,
        ))
        self.sparkle_time = self.time
        self.last_double_tap = self.time
        self.pad_level = 1.0
        return col, row

    def _held_columns(self) -> List[int]:
        return [col for col, _ in self.held] + [col for col, _ in self.held_notes.values()]

    def _held_changed(self, pressed: bool) -> None:
        columns = self._held_columns()
        self.fusion.set_held(profile_for_column(col) for col in columns)
        if not pressed:
            return
        n = len(columns)
        if n >= self.cfg.inputs.sparkle_min_keys:
            self.sparkle_time = self.time
        if n >= self.cfg.inputs.pad_min_keys:
            self.pad_level = 1.0

    # ------------------------------------------------------------------
    # Continuous inputs and modes
    # ------------------------------------------------------------------

    def mouse_move(self, dx: float, dy: float) -> None:
        self.mouse_velocity = math.hypot(dx, dy)

    def zoom_by(self, steps: float) -> float:
        """Wheel zoom; positive steps zoom out."""
        inputs = self.cfg.inputs
        self.zoom = float(np.clip(self.zoom + steps * inputs.zoom_step, inputs.zoom_min, inputs.zoom_max))
        return self.zoom

    def reset_zoom(self) -> None:
        self.zoom = 1.0

    def freeze_visuals(self, seconds: float = 2.0) -> None:
        """Hold attractor strength and parameter targets for a while."""
        self.freeze_until = self.time + seconds

    @property
    def frozen(self) -> bool:
        return self.time < self.freeze_until

    def set_sustain_pedal(self, down: bool) -> None:
        self.sustain_pedal = down
        if not down:
            for midi in self._pedal_voices:
                self.audio.release_note(midi)
            self._pedal_voices.clear()

    def stop_all_sustained(self) -> None:
        voices = set(self._ringing.values()) | self._note_voices | set(self._pedal_voices)
        for midi in sorted(voices):
            self.audio.release_note(midi)
        self._ringing.clear()
        self._note_voices.clear()
        self._pedal_voices.clear()

    def toggle_arpeggiator(self) -> bool:
        return self.arpeggiator.toggle()

    def toggle_ambient(self) -> bool:
        return self.ambient.toggle()

    def submit_camera_frame(self, frame: np.ndarray) -> GestureState:
        """Feed one camera frame; throttled inside the tracker."""
        if not self.tracking_enabled:
            return NEUTRAL_GESTURE
        return self.tracker.process(frame, self.time)

    def submit_microphone(self, samples: np.ndarray) -> float:
        """Feed raw time-domain samples instead of the audio engine's level."""
        self._mic_fed = True
        return self.mic.update(samples)

    def disable_tracking(self, reason: str = "") -> None:
        if self.tracking_enabled:
            logger.warning("Motion tracking disabled%s", f": {reason}" if reason else "")
        self.tracking_enabled = False
        self.tracker.reset()

    @property
    def gesture(self) -> GestureState:
        return self.tracker.state if self.tracking_enabled else NEUTRAL_GESTURE

    def _poll_camera(self) -> None:
        if self.camera is None or not self.tracking_enabled:
            return
        try:
            frame = self.camera.next_frame()
        except DeviceUnavailable as exc:
            self.disable_tracking(str(exc))
            self.camera = None
            return
        if frame is not None:
            self.tracker.process(frame, self.time)

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def _advance_inputs(self) -> None:
        inputs = self.cfg.inputs
        self.pad_level *= inputs.pad_decay
        if len(self.held) + len(self.held_notes) >= inputs.pad_min_keys:
            self.pad_level = max(self.pad_level, inputs.pad_hold_level)
        self.mouse_velocity *= inputs.touch_decay
        self.touch_intensity = min(1.0, self.mouse_velocity / inputs.touch_norm)

    def _run_sequencers(self, dt: float) -> None:
        events = self.arpeggiator.tick(dt, list(self.held.values()) + list(self.held_notes))
        events += self.ambient.tick(dt)
        for event in events:
            self._play_note(event)

    def tick(self, now: Optional[float] = None, dt: Optional[float] = None) -> RenderFrame:
        """
        Advance every component by one frame.

        Args:
            now: Current time in seconds (defaults to previous time + dt).
            dt: Frame duration (defaults to one 60 fps frame).
        """
        if dt is None:
            dt = 1.0 / 60.0
        if now is None:
            now = self.time + dt
        self.time = now
        inputs_cfg = self.cfg.inputs

        self._poll_camera()
        self._advance_inputs()
        self._run_sequencers(dt)

        levels = self.audio.levels()
        bass_hit = levels.bass_hit(inputs_cfg.bass_hit_threshold)
        if self._mic_fed:
            mic_visual = self.mic.visual
        else:
            mic_visual = self.audio.microphone_level() * inputs_cfg.mic_visual_scale

        gesture = self.gesture
        if gesture.fast_swipe.active_at(now):
            self.sparkle_time = now

        frozen = self.frozen
        self.attractor.frozen = frozen
        self.fusion.update(dt, now, FusionContext(
            attractor_strength=self.attractor.strength,
            attractor_active=self.attractor.is_active(),
            frozen=frozen,
            gesture=gesture,
        ))

        self.attractor.decay(dt)
        uniforms = self.attractor.uniforms(extra_strength=bass_hit * 0.8 + mic_visual * 0.5)
        self.field.step(dt, uniforms, flow_time=now)

        parameters = self.fusion.compose(FusionInputs(
            levels=levels,
            bass_hit=bass_hit,
            mic_visual=mic_visual,
            touch_intensity=self.touch_intensity,
            double_tap_flash=max(0.0, 1.0 - (now - self.last_double_tap) / inputs_cfg.double_tap_flash_sec),
            sparkle_flash=max(0.0, 1.0 - (now - self.sparkle_time) / inputs_cfg.sparkle_sec),
            pad_level=self.pad_level,
            zoom=self.zoom,
            gesture=gesture,
        ), now)

        frame = RenderFrame(
            index=self.frame_index,
            time=now,
            parameters=parameters,
            attractor=uniforms,
            positions=self.field.positions(),
            simulated=self.field.simulated,
            gesture=gesture,
        )
        self.frame_index += 1
        self._render(frame)
        return frame

    def _render(self, frame: RenderFrame) -> None:
        if self.renderer is None:
            return
        try:
            self.renderer(frame)
        except TransientRenderFailure as exc:
            self.render_failures += 1
            logger.warning("Frame %d failed to render (%d so far): %s",
                           frame.index, self.render_failures, exc)
