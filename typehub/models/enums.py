from enum import Enum


class Language(str, Enum):
    ENGLISH = "english"
    MARATHI = "marathi"


class Category(str, Enum):
    LESSONS = "lessons"
    COURT_EXAM = "court-exam"
    MPSC = "mpsc"


class AccessType(str, Enum):
    FREE = "free"
    FREE_AFTER_LOGIN = "free-after-login"
    PAID = "paid"


class PriceTier(str, Enum):
    ALL = "all"
    FREE = "free"
    PAID = "paid"


class SubmissionSort(str, Enum):
    CREATED_AT = "createdAt"
    TIME_TAKEN = "timeTakenSeconds"
    WPM = "wpm"
    ACCURACY = "accuracy"
