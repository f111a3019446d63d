"""Drug therapy problem enums."""

from enum import Enum


class DTPCategory(str, Enum):
    INDICATION = "indication"
    EFFECTIVENESS = "effectiveness"
    SAFETY = "safety"
    ADHERENCE = "adherence"


class DTPType(str, Enum):
    """Kinds of drug therapy problem."""

    UNNECESSARY = "unnecessary"
    WRONG_DRUG = "wrongDrug"
    DOSE_TOO_LOW = "doseTooLow"
    DOSE_TOO_HIGH = "doseTooHigh"
    ADVERSE_REACTION = "adverseReaction"
    INAPPROPRIATE_ADHERENCE = "inappropriateAdherence"
    NEEDS_ADDITIONAL = "needsAdditional"
    INTERACTION = "interaction"
    DUPLICATION = "duplication"
    CONTRAINDICATION = "contraindication"
    MONITORING = "monitoring"


class DTPSeverity(str, Enum):
    CRITICAL = "critical"
    MAJOR = "major"
    MODERATE = "moderate"
    MINOR = "minor"


class EvidenceLevel(str, Enum):
    DEFINITE = "definite"
    PROBABLE = "probable"
    POSSIBLE = "possible"
    UNLIKELY = "unlikely"


class DTPStatus(str, Enum):
    IDENTIFIED = "identified"
    ADDRESSED = "addressed"
    MONITORING = "monitoring"
    RESOLVED = "resolved"
    NOT_APPLICABLE = "not_applicable"


class ContraindicationSeverity(str, Enum):
    ABSOLUTE = "absolute"
    RELATIVE = "relative"
