from typing import Any, Dict, List

# Weights sum to 100.  Every item is all-or-nothing, so a satisfied item
# always adds its full weight and the score is monotonic in completed
# items.  Supported condition types:
#   fields_present  every attribute in ``fields`` is non-empty
#   program         at least one program of interest
#   document        ``documents_submitted`` holds one of ``aliases``
#   min_value       numeric attribute ``field`` >= ``threshold``
#   status_in       lead status is one of ``statuses``
DEFAULT_QUALIFICATION_RUBRIC: List[Dict[str, Any]] = [
    {
        "key": "contact_details",
        "label": "Contact details (email and phone)",
        "weight": 15,
        "condition": {"type": "fields_present", "fields": ["email", "phone"]},
        "recommendation": "Collect the applicant's email address and phone number",
    },
    {
        "key": "profile",
        "label": "Applicant profile (name and country)",
        "weight": 10,
        "condition": {
            "type": "fields_present",
            "fields": ["first_name", "last_name", "country"],
        },
        "recommendation": "Complete the applicant's name and country of residence",
    },
    {
        "key": "program_selected",
        "label": "Program of interest selected",
        "weight": 15,
        "condition": {"type": "program"},
        "recommendation": "Confirm which program the applicant wants to apply to",
    },
    {
        "key": "transcript",
        "label": "Academic transcript submitted",
        "weight": 10,
        "condition": {
            "type": "document",
            "aliases": ["transcript", "academic_transcript", "transcripts"],
        },
        "recommendation": "Request the applicant's academic transcript",
    },
    {
        "key": "identification",
        "label": "Identification document submitted",
        "weight": 10,
        "condition": {
            "type": "document",
            "aliases": ["passport", "identification", "id", "national_id", "id_card"],
        },
        "recommendation": "Request a passport or national ID",
    },
    {
        "key": "english_proficiency",
        "label": "English proficiency evidence submitted",
        "weight": 10,
        "condition": {
            "type": "document",
            "aliases": [
                "english_proficiency",
                "ielts",
                "toefl",
                "pte",
                "duolingo",
            ],
        },
        "recommendation": "Request an English proficiency test result",
    },
    {
        "key": "engagement",
        "label": "Engaged (3 or more activities)",
        "weight": 10,
        "condition": {"type": "min_value", "field": "activity_count", "threshold": 3},
        "recommendation": "Schedule a follow-up call or campus event to build engagement",
    },
    {
        "key": "lead_score",
        "label": "Lead score of 50 or more",
        "weight": 10,
        "condition": {"type": "min_value", "field": "lead_score", "threshold": 50},
        "recommendation": "Nurture the lead with program content to raise interest",
    },
    {
        "key": "advisor_contact",
        "label": "Contacted by an advisor",
        "weight": 10,
        "condition": {
            "type": "status_in",
            "statuses": ["contacted", "qualified", "nurturing"],
        },
        "recommendation": "Have the assigned advisor make first contact",
    },
]
