import pytest

from hybridfluid.animation import Frame, PhysicsAnimation
from hybridfluid.errors import UnboundedSubstepping


class RecordingStepper:
    """Minimal TimeSteppable that remembers what the driver asked of it."""

    def __init__(self, sub_steps=1):
        self.sub_steps = sub_steps
        self.initialized = 0
        self.steps = []

    def initialize(self):
        self.initialized += 1

    def on_advance_time_step(self, time_interval):
        self.steps.append(time_interval)

    def number_of_sub_time_steps(self, time_interval):
        return self.sub_steps

    def cfl(self, time_interval):
        return 5.0 * self.sub_steps


def test_frame_clock():
    frame = Frame(3, 0.5)
    assert frame.time_in_seconds() == pytest.approx(1.5)
    frame.advance()
    assert frame.index == 4


def test_fixed_sub_steps_split_the_frame():
    stepper = RecordingStepper()
    anim = PhysicsAnimation(stepper, frame_interval=0.3, number_of_fixed_sub_time_steps=3)
    anim.advance_frame(0)

    assert stepper.steps == pytest.approx([0.1, 0.1, 0.1])
    assert anim.current_frame.index == 0
    assert anim.current_time == pytest.approx(0.3)


def test_adaptive_sub_steps_ask_the_stepper():
    stepper = RecordingStepper(sub_steps=4)
    anim = PhysicsAnimation(stepper, frame_interval=1.0, is_using_fixed_sub_time_steps=False)
    anim.advance_single_frame()

    assert len(stepper.steps) == 4
    assert stepper.steps[0] == pytest.approx(0.25)


def test_frames_advance_up_to_the_requested_index():
    stepper = RecordingStepper()
    anim = PhysicsAnimation(stepper, frame_interval=0.1)

    anim.advance_frame(0)
    anim.advance_frame(0)
    assert len(stepper.steps) == 1

    anim.advance_frame(3)
    assert len(stepper.steps) == 4
    assert anim.current_frame.index == 3
    assert anim.current_time == pytest.approx(0.4)

    anim.advance_frame(1)
    assert len(stepper.steps) == 4


def test_initialize_runs_once_and_lazily():
    stepper = RecordingStepper()
    anim = PhysicsAnimation(stepper)
    assert stepper.initialized == 0
    anim.advance_frame(2)
    anim.advance_single_frame()
    assert stepper.initialized == 1


def test_fixed_count_is_at_least_one():
    anim = PhysicsAnimation(RecordingStepper(), number_of_fixed_sub_time_steps=0)
    assert anim.number_of_fixed_sub_time_steps == 1


def test_unbounded_sub_stepping_fails_before_stepping():
    stepper = RecordingStepper(sub_steps=1000)
    anim = PhysicsAnimation(stepper, is_using_fixed_sub_time_steps=False, max_sub_time_steps=256)

    with pytest.raises(UnboundedSubstepping) as excinfo:
        anim.advance_frame(0)

    assert excinfo.value.requested == 1000
    assert excinfo.value.limit == 256
    assert excinfo.value.cfl == pytest.approx(5000.0)
    assert stepper.steps == []
    assert anim.current_frame.index == -1
    assert anim.current_time == 0.0
