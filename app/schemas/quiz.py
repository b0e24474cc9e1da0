"""
Pydantic schemas for quizzes, questions, sessions and attempts
"""
from datetime import datetime
from enum import Enum
from pydantic import BaseModel, Field, model_validator
from typing import List, Dict, Any, Optional, Union


class QuestionKind(str, Enum):
    """Question kinds understood by the engine"""
    BIRTH_YEAR = "birthYear"
    DEATH_YEAR = "deathYear"
    PROFESSION = "profession"
    COUNTRY = "country"
    ACHIEVEMENTS_MATCH = "achievementsMatch"
    GUESS_PERSON = "guessPerson"
    BIRTH_ORDER = "birthOrder"
    CONTEMPORARIES = "contemporaries"


class AnswerShape(str, Enum):
    """Shape of the canonical answer, fixed per question kind"""
    SCALAR = "scalar"
    ORDERED_LIST = "ordered_list"
    GROUP_PARTITION = "group_partition"


ANSWER_SHAPES: Dict[QuestionKind, AnswerShape] = {
    QuestionKind.BIRTH_YEAR: AnswerShape.SCALAR,
    QuestionKind.DEATH_YEAR: AnswerShape.SCALAR,
    QuestionKind.PROFESSION: AnswerShape.SCALAR,
    QuestionKind.COUNTRY: AnswerShape.SCALAR,
    QuestionKind.GUESS_PERSON: AnswerShape.SCALAR,
    QuestionKind.ACHIEVEMENTS_MATCH: AnswerShape.ORDERED_LIST,
    QuestionKind.BIRTH_ORDER: AnswerShape.ORDERED_LIST,
    QuestionKind.CONTEMPORARIES: AnswerShape.GROUP_PARTITION,
}

# A year may arrive as a number or a string; everything else is text or lists of ids
AnswerValue = Union[int, str, List[str], List[List[str]]]


def answer_matches_shape(value: Any, shape: AnswerShape) -> bool:
    """Check that a value has the structure a given answer shape requires"""
    if shape is AnswerShape.SCALAR:
        return isinstance(value, (str, int)) and not isinstance(value, bool)
    if shape is AnswerShape.ORDERED_LIST:
        return isinstance(value, list) and all(isinstance(item, str) for item in value)
    return (
        isinstance(value, list)
        and all(
            isinstance(group, list) and all(isinstance(member, str) for member in group)
            for group in value
        )
    )


class QuizSetupConfig(BaseModel):
    """Setup a standalone quiz was generated with (opaque to the engine)"""
    selected_countries: List[str] = []
    selected_categories: List[str] = []
    question_types: List[str] = []
    question_count: int = 0
    time_range: Optional[Dict[str, int]] = None


class Question(BaseModel):
    """Quiz question with its canonical answer"""
    id: str = Field(..., min_length=1, max_length=128)
    type: QuestionKind
    question: str
    options: Optional[List[str]] = None
    correct_answer: AnswerValue
    explanation: Optional[str] = None
    data: Optional[Any] = None

    @model_validator(mode="after")
    def check_answer_shape(self):
        shape = ANSWER_SHAPES[self.type]
        if not answer_matches_shape(self.correct_answer, shape):
            raise ValueError(
                f"correct_answer of a {self.type.value} question must be {shape.value}"
            )
        return self


class PublicQuestion(BaseModel):
    """Question as shown to players: no correct answer, no explanation"""
    id: str
    type: QuestionKind
    question: str
    options: Optional[List[str]] = None
    data: Optional[Any] = None


class DetailedAnswer(BaseModel):
    """Per-question outcome reported by a client for a standalone quiz"""
    question_id: Optional[str] = None
    answer: Optional[AnswerValue] = None
    is_correct: bool
    time_spent: int = Field(..., ge=0, description="Time spent in milliseconds")
    question_type: QuestionKind


class SaveAttemptRequest(BaseModel):
    """Schema for saving a standalone quiz attempt"""
    correct_answers: int = Field(..., ge=0)
    total_questions: int = Field(..., gt=0)
    total_time_ms: int = Field(..., ge=0)
    config: Optional[QuizSetupConfig] = None
    question_types: List[QuestionKind]
    answers: Optional[List[DetailedAnswer]] = None
    questions: Optional[List[Question]] = None


class SaveAttemptResponse(BaseModel):
    attempt_id: int
    rating_points: float


class CreatorAnswer(BaseModel):
    question_id: str
    answer: Optional[AnswerValue] = None
    is_correct: bool
    time_spent: int = Field(..., ge=0)


class CreatorAttempt(BaseModel):
    """Creator's own play-through, stored together with the shared quiz"""
    correct_answers: int = Field(..., ge=0)
    total_questions: int = Field(..., gt=0)
    total_time_ms: int = Field(..., ge=0)
    answers: Optional[List[CreatorAnswer]] = None


class CreateSharedQuizRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    config: Optional[QuizSetupConfig] = None
    questions: List[Question] = Field(..., min_length=1)
    creator_attempt: Optional[CreatorAttempt] = None


class CreateSharedQuizResponse(BaseModel):
    id: int
    share_code: str
    share_url: str


class SharedQuizResponse(BaseModel):
    """Shared quiz as served to players"""
    id: int
    title: str
    description: Optional[str] = None
    creator_id: int
    config: Optional[Dict[str, Any]] = None
    questions: List[PublicQuestion]
    created_at: Optional[datetime] = None


class StartSessionResponse(BaseModel):
    session_token: str
    expires_at: datetime


class CheckAnswerRequest(BaseModel):
    session_token: str = Field(..., min_length=1)
    question_id: str = Field(..., min_length=1)
    answer: AnswerValue
    time_spent: int = Field(..., ge=0, description="Time spent in milliseconds")


class CheckAnswerResponse(BaseModel):
    is_correct: bool


class FinishSessionRequest(BaseModel):
    session_token: str = Field(..., min_length=1)


class DetailedQuestionResult(BaseModel):
    """Post-quiz review of a single question"""
    question_id: str
    question: str
    is_correct: bool
    user_answer: Optional[AnswerValue] = None
    correct_answer: AnswerValue
    explanation: Optional[str] = None
    time_spent: int = 0


class FinishSessionResponse(BaseModel):
    attempt_id: int
    correct_answers: int
    total_questions: int
    total_time_ms: int
    rating_points: float
    detailed_results: List[DetailedQuestionResult]


class HistoryEntry(BaseModel):
    attempt_id: int
    quiz_title: Optional[str] = None
    shared_quiz_id: Optional[int] = None
    is_shared: bool
    correct_answers: int
    total_questions: int
    total_time_ms: int
    rating_points: float
    created_at: Optional[datetime] = None
    config: Optional[Dict[str, Any]] = None


class AttemptDetailResponse(BaseModel):
    id: int
    user_id: Optional[int] = None
    shared_quiz_id: Optional[int] = None
    quiz_title: Optional[str] = None
    correct_answers: int
    total_questions: int
    total_time_ms: int
    rating_points: float
    config: Optional[Dict[str, Any]] = None
    answers: Optional[List[Dict[str, Any]]] = None
    questions: Optional[List[Dict[str, Any]]] = None
    created_at: Optional[datetime] = None


class SessionAnswerView(BaseModel):
    question_id: str
    answer: Optional[AnswerValue] = None
    is_correct: bool
    time_spent: int


class SessionDetailResponse(BaseModel):
    quiz_title: str
    shared_quiz_id: int
    user_id: Optional[int] = None
    started_at: datetime
    finished_at: datetime
    answers: List[SessionAnswerView]
    questions: List[Dict[str, Any]]
