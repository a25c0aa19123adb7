from admission.models.job import JobPosting
from admission.models.candidate import Candidate
from admission.models.credential import TemporaryCredential
from admission.models.document import DocumentRecord, DocumentSlot
from admission.models.session import CandidateSession
from admission.models.outbox import OutboxTask
from admission.models.hr_user import AuthThrottle, HrUser
from admission.models.lgpd import DataSubjectRequest

__all__ = [
    "JobPosting", "Candidate", "TemporaryCredential", "DocumentRecord", "DocumentSlot",
    "CandidateSession", "OutboxTask", "HrUser", "AuthThrottle", "DataSubjectRequest",
]
