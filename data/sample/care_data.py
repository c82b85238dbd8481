"""
Sample care data.

Doctors with availability, patient profiles and patient clinical records,
keyed by logical container name (see shared/cosmos_config.py).
"""

DOCTORS = [
    {
        "id": "doc-ana-reyes",
        "first_name": "Ana",
        "last_name": "Reyes",
        "specialty": "Cardiology",
        "qualification": "MD, FACC",
        "experience_years": 14,
        "availability": {
            "working_hours": {
                "monday": ["09:00-12:00", "14:00-17:00"],
                "wednesday": ["09:00-13:00"],
                "friday": ["10:00-15:00"],
            }
        },
    },
    {
        "id": "doc-omar-haddad",
        "first_name": "Omar",
        "last_name": "Haddad",
        "specialty": "Dermatology",
        "qualification": "MD",
        "experience_years": 8,
        "availability": {
            "working_hours": {
                "tuesday": ["09:00-17:00"],
                "thursday": ["09:00-17:00"],
                "saturday": [],
            }
        },
    },
    {
        "id": "doc-lena-fischer",
        "first_name": "Lena",
        "last_name": "Fischer",
        "specialty": "General Practice",
        "qualification": "MBBS",
        "experience_years": 21,
        "availability": {
            "working_hours": {
                "monday": ["08:00-16:00"],
                "tuesday": ["08:00-16:00"],
                "wednesday": ["08:00-16:00"],
                "thursday": ["08:00-16:00"],
                "friday": ["08:00-12:00"],
            }
        },
    },
    {
        "id": "doc-kenji-sato",
        "first_name": "Kenji",
        "last_name": "Sato",
        "specialty": "Otolaryngology",
        "qualification": "MD, PhD",
        "experience_years": 11,
        # No schedule declared yet: the default slot list is offered
        "availability": None,
    },
]

PROFILES = [
    {
        "id": "pat-maria-lopez",
        "first_name": "Maria",
        "last_name": "Lopez",
        "email": "maria.lopez@example.com",
        "phone": "+1-555-0101",
        "date_of_birth": "1986-04-12",
        "gender": "female",
    },
    {
        "id": "pat-david-chen",
        "first_name": "David",
        "last_name": "Chen",
        "email": "david.chen@example.com",
        "phone": None,
        "date_of_birth": "1974-11-30",
        "gender": "male",
    },
]

MEDICATIONS = [
    {
        "id": "med-1",
        "user_id": "pat-maria-lopez",
        "name": "Lisinopril",
        "dosage": "10 mg",
        "frequency": "once daily",
        "is_active": True,
    },
    {
        "id": "med-2",
        "user_id": "pat-maria-lopez",
        "name": "Amoxicillin",
        "dosage": "500 mg",
        "frequency": "three times daily",
        "is_active": False,
    },
]

MEDICAL_CONDITIONS = [
    {"id": "cond-1", "user_id": "pat-maria-lopez", "name": "Hypertension", "is_active": True},
    {"id": "cond-2", "user_id": "pat-david-chen", "name": "Seasonal allergies", "is_active": True},
]

ALLERGIES = [
    {
        "id": "alg-1",
        "user_id": "pat-maria-lopez",
        "name": "Penicillin",
        "reaction": "Hives",
        "severity": "moderate",
    },
]

SAMPLE_DATA = {
    "doctors": DOCTORS,
    "profiles": PROFILES,
    "medications": MEDICATIONS,
    "medical_conditions": MEDICAL_CONDITIONS,
    "allergies": ALLERGIES,
}
