import threading
import time
from dataclasses import replace

import numpy as np
import pytest

from bionet import (
    CurriculumTeacher,
    DelegateDispatcher,
    ERROR_STUDENT_SILENT,
    NotificationKind,
    NotificationQueue,
    ReinforcementKind,
    TeacherStatus,
    build_curriculum,
    key_concept,
)
from bionet.curriculum import split_sentences


class FakeStudent:
    """Records what the teacher does; optionally echoes every lesson back."""

    def __init__(self, echo=True):
        self.echo = echo
        self.seq = 0
        self.text = None
        self.pending = None
        self.lessons = []
        self.taught = []
        self.boosted = []
        self.concepts = set()
        self.reinforcements = []

    def inject_lesson(self, sentence, now):
        self.lessons.append(sentence)
        if self.echo:
            self.pending = sentence

    def teach_word(self, word, now):
        self.taught.append(word)
        self.concepts.add(word)

    def has_concept(self, word):
        return word in self.concepts

    def boost_concept(self, word, now):
        self.boosted.append(word)

    def reinforce(self, kind, now):
        self.reinforcements.append(kind)

    def latest_utterance(self):
        return self.seq, self.text

    def speak(self):
        if self.pending is not None:
            self.seq += 1
            self.text = self.pending
            self.pending = None


def run(teacher, student, max_steps=2000):
    statuses = []
    for step in range(max_steps):
        student.speak()
        statuses.append(teacher.step(student, now=float(step)))
        if not teacher.active:
            break
    return statuses


@pytest.fixture
def notes():
    return NotificationQueue()


@pytest.fixture
def teacher(config, notes):
    return CurriculumTeacher(config, np.random.default_rng(0), notes)


def test_key_concept_is_longest_token():
    assert key_concept("A dog is an animal.") == "animal"
    assert key_concept("big red cat") == "big"
    assert key_concept("Der Hund, bellt!") == "bellt"


def test_build_curriculum_from_table_and_fallback():
    topic, lessons = build_curriculum("Tell me about the Hund")
    assert topic == "dog"
    assert lessons[0] == "A dog is an animal."

    topic, lessons = build_curriculum("  quantum  ")
    assert topic == "quantum"
    assert lessons == ["quantum"]


def test_split_sentences():
    assert split_sentences("One. Two!\nThree?") == ["One.", "Two!", "Three?"]
    assert split_sentences("- a. - b. - c.", max_sentences=2) == ["a.", "b."]


def test_echoing_student_finishes_without_correction(teacher, notes):
    student = FakeStudent(echo=True)
    assert teacher.start("dog", student, now=0.0)

    statuses = run(teacher, student)

    n = len(build_curriculum("dog")[1])
    assert teacher.status == TeacherStatus.IDLE
    assert TeacherStatus.CORRECTING not in statuses
    assert teacher.cycles == n
    assert student.reinforcements == [ReinforcementKind.REWARD] * n
    assert teacher.lessons_learned == n
    kinds = [note.kind for note in notes.drain()]
    assert kinds[0] == NotificationKind.TRAINING_STARTED
    assert kinds[-1] == NotificationKind.TRAINING_COMPLETED


def test_silent_student_is_corrected_and_curriculum_drains(config, notes):
    config = replace(config, teacher_patience=3)
    teacher = CurriculumTeacher(config, np.random.default_rng(0), notes)
    student = FakeStudent(echo=False)
    teacher.start("dog", student, now=0.0)

    teacher.step(student, now=0.0)  # Inject first lesson
    statuses = [teacher.step(student, now=float(i)) for i in range(1, config.teacher_patience + 2)]

    assert statuses[-1] == TeacherStatus.CORRECTING
    assert TeacherStatus.CORRECTING not in statuses[:-1]
    assert teacher.error_code == ERROR_STUDENT_SILENT

    teacher.step(student, now=10.0)
    assert student.taught == ["animal"]
    assert teacher.status == TeacherStatus.WAITING

    run(teacher, student)
    assert teacher.status == TeacherStatus.IDLE
    assert student.reinforcements == []
    assert "animal" in student.boosted
    assert len(student.lessons) == len(build_curriculum("dog")[1])


def test_utterances_before_the_lesson_do_not_count(teacher):
    student = FakeStudent(echo=False)
    student.seq, student.text = 5, "animal animal"
    teacher.start("dog", student, now=0.0)

    teacher.step(student, now=0.0)
    teacher.step(student, now=1.0)

    assert student.reinforcements == []
    assert teacher.status == TeacherStatus.WAITING


def test_negative_instruction_punishes(teacher):
    student = FakeStudent()

    assert teacher.start("No, that is wrong!", student, now=0.0) is False
    assert student.reinforcements == [ReinforcementKind.PUNISH]
    assert teacher.status == TeacherStatus.IDLE


def test_stop_clears_curriculum(teacher, notes):
    student = FakeStudent()
    teacher.start("cat", student, now=0.0)
    teacher.step(student, now=0.0)

    teacher.stop(now=1.0)

    assert teacher.status == TeacherStatus.IDLE
    assert not teacher.curriculum
    assert notes.latest.kind == NotificationKind.TRAINING_STOPPED


def wait_until_started(teacher, student, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        teacher.step(student, now=0.0)
        if teacher.status != TeacherStatus.IDLE:
            return
        time.sleep(0.01)
    raise AssertionError("curriculum never started")


def test_delegate_result_becomes_curriculum(config, notes):
    dispatcher = DelegateDispatcher(lambda prompt: "Dogs bark. Dogs run fast.", timeout=5.0)
    teacher = CurriculumTeacher(config, np.random.default_rng(0), notes, dispatcher)
    student = FakeStudent()
    try:
        assert teacher.start("dogs", student, now=0.0)
        assert teacher.active
        wait_until_started(teacher, student)
    finally:
        dispatcher.shutdown()

    assert teacher.topic == "dogs"
    assert student.lessons == ["Dogs bark."]
    assert list(teacher.curriculum) == ["Dogs run fast."]


def test_delegate_failure_falls_back_to_table(config, notes):
    def broken(prompt):
        raise RuntimeError("service down")

    dispatcher = DelegateDispatcher(broken, timeout=5.0)
    teacher = CurriculumTeacher(config, np.random.default_rng(0), notes, dispatcher)
    student = FakeStudent()
    try:
        teacher.start("dog", student, now=0.0)
        wait_until_started(teacher, student)
    finally:
        dispatcher.shutdown()

    assert teacher.topic == "dog"
    kinds = [note.kind for note in notes.drain()]
    assert NotificationKind.DELEGATE_FAILED in kinds
    assert NotificationKind.TRAINING_STARTED in kinds


def test_delegate_timeout_does_not_block_teacher(config, notes):
    release = threading.Event()
    clock = [0.0]
    dispatcher = DelegateDispatcher(lambda prompt: release.wait(5.0) and "late", timeout=10.0, clock=lambda: clock[0])
    teacher = CurriculumTeacher(config, np.random.default_rng(0), notes, dispatcher)
    student = FakeStudent()
    try:
        teacher.start("cat", student, now=0.0)
        teacher.step(student, now=0.0)
        assert teacher.status == TeacherStatus.IDLE
        assert teacher.active

        clock[0] = 11.0
        teacher.step(student, now=11.0)
        assert teacher.topic == "cat"
        assert student.lessons == ["A cat is an animal."]
        assert "timed out" in notes.drain()[0].text
    finally:
        release.set()
        dispatcher.shutdown()
