import enum


class ChallanStatus(str, enum.Enum):
    draft = "draft"
    approved = "approved"
    accepted = "accepted"
