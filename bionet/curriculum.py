"""
Curriculum Teacher
==================

A small state machine that drives supervised instruction:

    IDLE -> TEACHING -> WAITING -> {TEACHING | CORRECTING} -> WAITING -> ... -> IDLE

IDLE        accepts a free-text instruction. Keyword lookup in a fixed topic
            table yields an ordered list of short lesson sentences; unknown
            topics become a single-fact lesson. Negative feedback words
            punish the student instead of starting a lesson.
TEACHING    pops the next lesson, awaits its key concept (longest word) and
            injects the sentence in learning mode.
WAITING     watches the student's utterances for the awaited word (reward
            and move on) while a throttled silence counter runs toward the
            patience limit.
CORRECTING  re-teaches the missing word, or boosts it if it already exists.

The topic table can be replaced by an external text generator. Its answer is
requested in the background and split into lesson sentences; if it fails the
fixed table is used instead.

The teacher talks to its student through a narrow duck-typed interface:

    inject_lesson(sentence, now)
    teach_word(word, now)
    has_concept(word) -> bool
    boost_concept(word, now)
    reinforce(kind, now)
    latest_utterance() -> (sequence_number, text or None)
"""

import logging
import re
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque, List, Optional, Tuple

import numpy as np

from .config import EngineConfig
from .delegate import DelegateDispatcher, DelegateResult
from .notifications import NotificationKind, NotificationQueue, Sender
from .reinforcement import ReinforcementKind

logger = logging.getLogger(__name__)


ERROR_STUDENT_SILENT = "E_STUDENT_SILENT"


class TeacherStatus(Enum):
    IDLE = "IDLE"
    TEACHING = "TEACHING"
    WAITING = "WAITING"
    CORRECTING = "CORRECTING"


@dataclass(frozen=True)
class Topic:
    """One entry of the fixed semantic table."""
    name: str
    keywords: Tuple[str, ...]
    lessons: Tuple[str, ...]


TOPIC_TABLE: Tuple[Topic, ...] = (
    Topic("dog", ("dog", "hund"), (
        "A dog is an animal.",
        "A dog barks loudly.",
        "A dog has four legs.",
        "A dog is a loyal friend.",
    )),
    Topic("cat", ("cat", "katze"), (
        "A cat is an animal.",
        "A cat purrs softly.",
        "A cat catches mice.",
        "A cat likes warm sunlight.",
    )),
    Topic("sun", ("sun", "sonne"), (
        "The sun is a star.",
        "The sun gives light.",
        "The sun warms the earth.",
        "Plants need sunlight.",
    )),
    Topic("water", ("water", "wasser"), (
        "Water is a liquid.",
        "Water freezes into ice.",
        "Rivers carry water.",
        "Every living thing needs water.",
    )),
    Topic("tree", ("tree", "baum"), (
        "A tree is a plant.",
        "A tree has leaves.",
        "Roots hold the tree.",
        "Forests contain many trees.",
    )),
    Topic("bird", ("bird", "vogel"), (
        "A bird has feathers.",
        "A bird can fly.",
        "Birds build nests.",
        "A bird sings songs.",
    )),
    Topic("apple", ("apple", "apfel"), (
        "An apple is a fruit.",
        "Apples grow on trees.",
        "An apple tastes sweet.",
    )),
    Topic("number", ("number", "zahl", "count", "zählen"), (
        "One comes before two.",
        "Two comes before three.",
        "Numbers describe quantity.",
    )),
)

NEGATIVE_WORDS = frozenset({"no", "nein", "wrong", "falsch", "bad", "schlecht", "nope"})

_WORD = re.compile(r"\w+")
_NON_WORD = re.compile(r"[^\w]+")
_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+|\n+")


def key_concept(sentence: str) -> str:
    """Longest whitespace-delimited token, punctuation stripped; first wins ties."""
    best = ""
    for raw in sentence.split():
        token = _NON_WORD.sub("", raw)
        if len(token) > len(best):
            best = token
    return best


def is_negative(instruction: str) -> bool:
    return any(w in NEGATIVE_WORDS for w in _WORD.findall(instruction.lower()))


def lookup_topic(instruction: str) -> Optional[Topic]:
    """First topic whose keyword is contained in the instruction."""
    lowered = instruction.lower()
    for topic in TOPIC_TABLE:
        if any(keyword in lowered for keyword in topic.keywords):
            return topic
    return None


def build_curriculum(instruction: str) -> Tuple[str, List[str]]:
    """
    Lessons for an instruction from the fixed table.

    Returns:
        (topic name, ordered lesson sentences)
    """
    topic = lookup_topic(instruction)
    if topic is not None:
        return topic.name, list(topic.lessons)
    raw = instruction.strip()
    return raw, [raw]


def split_sentences(text: str, max_sentences: int = 8) -> List[str]:
    """Cut generated text into short lesson sentences."""
    sentences = []
    for part in _SENTENCE_BREAK.split(text):
        part = part.strip().strip("-*").strip()
        if part and _WORD.search(part):
            sentences.append(part)
        if len(sentences) >= max_sentences:
            break
    return sentences


class CurriculumTeacher:
    """
    Supervised instruction with silence detection and correction.
    """

    def __init__(
        self,
        config: EngineConfig,
        rng: np.random.Generator,
        notifications: NotificationQueue,
        dispatcher: Optional[DelegateDispatcher] = None,
    ):
        self.config = config
        self.rng = rng
        self.notifications = notifications
        self.dispatcher = dispatcher

        self.status = TeacherStatus.IDLE
        self.curriculum: Deque[str] = deque()
        self.topic: Optional[str] = None
        self.current_lesson: Optional[str] = None
        self.awaited_word: Optional[str] = None
        self.silence = 0
        self.corrections_for_word = 0
        self.thought = "Idle."
        self.error_code: Optional[str] = None

        # Counters
        self.lessons_taught = 0
        self.lessons_learned = 0
        self.corrections = 0
        self.cycles = 0  # TEACHING -> WAITING transitions

        self._lesson_utterance_seq = 0
        self._pending_tag: Optional[str] = None
        self._pending_instruction: Optional[str] = None

    @property
    def active(self) -> bool:
        return self.status != TeacherStatus.IDLE or self._pending_tag is not None

    # ========== Commands ==========

    def start(self, instruction: str, student, now: float) -> bool:
        """
        Start a curriculum from a free-text instruction.

        Returns:
            True if a curriculum was started or requested
        """
        text = instruction.strip()
        if not text:
            return False

        if is_negative(text):
            student.reinforce(ReinforcementKind.PUNISH, now)
            self.thought = "That was wrong. Punishing the recent activity."
            self._notify(NotificationKind.REINFORCEMENT, "CORRECTION: recent activity punished", now)
            return False

        self._reset()
        if self.dispatcher is not None:
            self._pending_tag = self.dispatcher.submit(f"Teach a child about: {text}")
            self._pending_instruction = text
            self.thought = f"Asking the generator about '{text}'."
            logger.info("[TEACHER] Delegated curriculum request for '%s'", text)
            return True

        topic, lessons = build_curriculum(text)
        self._begin(topic, lessons, now)
        return True

    def stop(self, now: float) -> None:
        was_active = self.active
        self._reset()
        if was_active:
            self.thought = "Training stopped."
            self._notify(NotificationKind.TRAINING_STOPPED, "TRAINING STOPPED", now)

    def _reset(self) -> None:
        self.status = TeacherStatus.IDLE
        self.curriculum.clear()
        self.topic = None
        self.current_lesson = None
        self.awaited_word = None
        self.silence = 0
        self.corrections_for_word = 0
        self.error_code = None
        self._pending_tag = None
        self._pending_instruction = None

    def _begin(self, topic: str, lessons: List[str], now: float) -> None:
        self.topic = topic
        self.curriculum = deque(lessons)
        self.status = TeacherStatus.TEACHING
        self.thought = f"Preparing {len(lessons)} lessons about '{topic}'."
        self._notify(
            NotificationKind.TRAINING_STARTED,
            f"TRAINING STARTED: {topic} ({len(lessons)} lessons)",
            now,
        )
        logger.info("[TEACHER] Curriculum '%s' with %d lessons", topic, len(lessons))

    # ========== State machine ==========

    def step(self, student, now: float) -> TeacherStatus:
        """Advance the state machine by one scheduler pass."""
        if self.dispatcher is not None:
            for result in self.dispatcher.poll():
                self._on_delegate_result(result, now)

        if self.status == TeacherStatus.TEACHING:
            self._teach(student, now)
        elif self.status == TeacherStatus.WAITING:
            self._wait(student, now)
        elif self.status == TeacherStatus.CORRECTING:
            self._correct(student, now)
        return self.status

    def _teach(self, student, now: float) -> None:
        if not self.curriculum:
            topic = self.topic
            self._reset()
            self.thought = f"Finished teaching '{topic}'."
            self._notify(NotificationKind.TRAINING_COMPLETED, f"TRAINING COMPLETED: {topic}", now)
            logger.info("[TEACHER] Curriculum '%s' completed", topic)
            return

        lesson = self.curriculum.popleft()
        self.current_lesson = lesson
        self.awaited_word = key_concept(lesson) or lesson
        self.corrections_for_word = 0
        student.inject_lesson(lesson, now)
        self._lesson_utterance_seq, _ = student.latest_utterance()

        self.lessons_taught += 1
        self.cycles += 1
        self.silence = 0
        self.status = TeacherStatus.WAITING
        self.thought = f"Taught '{lesson}'. Waiting for '{self.awaited_word}'."
        self._notify(NotificationKind.LESSON, f"LESSON: {lesson}", now)

    def _wait(self, student, now: float) -> None:
        seq, utterance = student.latest_utterance()
        if (
            utterance
            and seq > self._lesson_utterance_seq
            and self.awaited_word.lower() in utterance.lower()
        ):
            student.reinforce(ReinforcementKind.REWARD, now)
            self.lessons_learned += 1
            self.error_code = None
            self.thought = f"Heard '{self.awaited_word}'. Well done."
            self.status = TeacherStatus.TEACHING
            return

        if self.rng.random() < self.config.teacher_pacing_probability:
            self.silence += 1

        if self.silence > self.config.teacher_patience:
            if self.corrections_for_word >= self.config.teacher_max_corrections:
                self.thought = f"Giving up on '{self.awaited_word}' for now."
                logger.info("[TEACHER] No answer for '%s', moving on", self.awaited_word)
                self.status = TeacherStatus.TEACHING
                return
            self.error_code = ERROR_STUDENT_SILENT
            self.thought = f"No answer for '{self.awaited_word}'. Correcting."
            self.status = TeacherStatus.CORRECTING

    def _correct(self, student, now: float) -> None:
        word = self.awaited_word
        if student.has_concept(word):
            student.boost_concept(word, now)
            action = "boosted"
        else:
            student.teach_word(word, now)
            action = "re-taught"
        self._lesson_utterance_seq, _ = student.latest_utterance()
        self.corrections += 1
        self.corrections_for_word += 1
        self.silence = 0
        self.status = TeacherStatus.WAITING
        self.thought = f"Correction: {action} '{word}'."
        self._notify(NotificationKind.CORRECTION_APPLIED, f"CORRECTION: {action} '{word}'", now)

    def _on_delegate_result(self, result: DelegateResult, now: float) -> None:
        if result.tag != self._pending_tag:
            return  # Request was stopped or superseded
        instruction = self._pending_instruction
        self._pending_tag = None
        self._pending_instruction = None

        lessons = split_sentences(result.text, self.config.delegate_max_sentences) if result.ok else []
        if lessons:
            self._begin(instruction, lessons, now)
            return

        reason = result.error or "empty answer"
        logger.warning("[DELEGATE] Generation failed (%s), using the topic table", reason)
        self._notify(
            NotificationKind.DELEGATE_FAILED,
            f"GENERATOR FAILED ({reason}); using built-in lessons",
            now,
        )
        topic, table_lessons = build_curriculum(instruction)
        self._begin(topic, table_lessons, now)

    def _notify(self, kind: NotificationKind, text: str, now: float) -> None:
        self.notifications.push(kind, text, now, sender=Sender.TEACHER)
