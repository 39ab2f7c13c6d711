# db/enums.py
import enum

class SubmissionStatus(enum.StrEnum):
    DRAFT = "Draft"
    PENDING_INITIAL_APPROVAL = "Pending Initial Approval"
    REJECTED_BY_REGIONAL_APPROVER = "Rejected by Initial Approver"
    PENDING_CENTRAL_VALIDATION = "Pending Central Validation"
    REJECTED_BY_CENTRAL_COMMITTEE = "Rejected by Central Committee"
    VALIDATED = "Validated"
    PENDING_CHAIRMAN_APPROVAL = "Pending Chairman Approval"
    SCORING_COMPLETE = "Scoring Complete"

class ReviewStatus(enum.StrEnum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"

class ResponseType(enum.StrEnum):
    YES_NO = "Yes/No"
    MULTIPLE_SELECT = "MultipleSelectCheckbox"
    TEXT_EXPLANATION = "TextExplanation"

class UnitType(enum.StrEnum):
    FEDERAL_INSTITUTE = "Federal Institute"
    REGION = "Region"
    CITY_ADMINISTRATION = "City Administration"
    ZONE = "Zone"
    SUB_CITY = "Sub-city"
    WOREDA = "Woreda"

class ActorRole(enum.StrEnum):
    SUPER_ADMIN = "Super Admin"
    MINT_ADMIN = "MInT Admin"
    DATA_CONTRIBUTOR = "Data Contributor"
    INSTITUTE_DATA_CONTRIBUTOR = "Institute Data Contributor"
    FEDERAL_DATA_CONTRIBUTOR = "Federal Data Contributor"
    REGIONAL_APPROVER = "Regional Approver"
    FEDERAL_APPROVER = "Federal Approver"
    INITIAL_APPROVER = "Initial Approver"
    CENTRAL_COMMITTEE_MEMBER = "Central Committee Member"
    CHAIRMAN = "Chairman (CC)"
    SECRETARY = "Secretary (CC)"

class WorkflowEvent(enum.StrEnum):
    SUBMIT_FOR_APPROVAL = "submit_for_approval"
    SUBMIT_REGIONAL_APPROVAL = "submit_regional_approval"
    SUBMIT_CENTRAL_VALIDATION = "submit_central_validation"
    RESUBMIT_TO_CENTRAL_COMMITTEE = "resubmit_to_central_committee"
    REJECT_TO_CONTRIBUTOR = "reject_to_contributor"
    FINALIZE_SCORING = "finalize_scoring"

class AggregateResult(enum.StrEnum):
    ALL_APPROVED = "all_approved"
    ANY_REJECTED = "any_rejected"
