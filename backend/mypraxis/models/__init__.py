# Import all SQL models so SQLModel metadata registers them
from mypraxis.models.artifact import Artifact  # noqa: F401
from mypraxis.models.practice import (  # noqa: F401
    Client,
    TherapeuticApproach,
    Therapist,
    TherapistApproach,
    TherapySession,
    UserPreferences,
)
from mypraxis.models.prompt import Prompt  # noqa: F401
