"""Static product and industry knowledge used by the rules tier.

These tables are data, not logic. Classification over them goes through the
``Classifier`` implementations in ``core/classifier.py``; recommendation
logic reads them through ``requirements_for`` and ``priority_categories_for``.
"""

from dataclasses import dataclass

GENERAL_SEGMENT = "General"


@dataclass(frozen=True)
class IndustryRequirements:
    """Product expectations for one industry segment.

    Attributes:
        must_have: Products nearly every client in the segment runs.
        recommended: Products that strengthen a standard onboarding flow.
        regulatory: Products mandated by the segment's regulator.
        avg_deal_size: Typical annual deal size in the reporting currency.
    """

    must_have: tuple[str, ...]
    recommended: tuple[str, ...]
    regulatory: tuple[str, ...]
    avg_deal_size: int


# Product category -> representative products. Order matters: the first
# entries are the ones pitched for a category gap.
PRODUCT_CATEGORIES: dict[str, tuple[str, ...]] = {
    "Identity Verification": (
        "Aadhaar OKYC with OTP", "Aadhaar PAN Link Verification", "PAN Verification",
        "Voter ID Verification", "Passport Verification", "Driving License Verification",
        "CKYC Search & Download", "CKYC Upload", "CKYC Validate",
    ),
    "Face & Biometric": (
        "Selfie Validation", "Face Match", "Liveness Check", "Face Comparison",
        "Selfie to ID Match", "Face Recognition",
    ),
    "Bank & Financial": (
        "Bank Account Verification", "Penny Drop", "Reverse Penny Drop", "Pennyless",
        "IFSC Verification", "Cheque OCR", "Passbook OCR", "Bank Statement Analysis",
    ),
    "AML & Compliance": (
        "AML", "AML Search", "Ongoing Monitoring", "Central DB Checks",
        "Court Record Checks", "Clear Background Analysis",
    ),
    "Document OCR": (
        "Document OCR", "PAN OCR", "Aadhaar OCR", "Passport OCR", "DL OCR",
        "Invoice OCR", "Utility Bill OCR", "Address Extraction",
    ),
    "Business Verification": (
        "Company Verification", "GST Verification", "GSTIN Verification",
        "Udyam Verification", "MCA Data", "Director Verification",
    ),
    "Credit & Risk": (
        "Credit Bureau", "CIBIL", "Experian", "CRIF", "Credit Score",
        "Risk Assessment", "Fraud Detection",
    ),
    "Vehicle & Transport": (
        "RC Verification", "Vehicle Registration", "Challan Verification",
        "Fastag Verification", "Transport Verification",
    ),
}

# Segment -> categories every client in the segment is expected to cover.
SEGMENT_PRIORITY_CATEGORIES: dict[str, tuple[str, ...]] = {
    "NBFC": ("Identity Verification", "Bank & Financial", "Credit & Risk", "AML & Compliance", "Document OCR"),
    "Banking": ("Identity Verification", "Bank & Financial", "AML & Compliance", "Credit & Risk"),
    "Payment Service Provider": ("Identity Verification", "Bank & Financial", "Face & Biometric", "AML & Compliance"),
    "Wealth Management": ("Identity Verification", "AML & Compliance", "Bank & Financial", "Business Verification"),
    "Brokerage": ("Identity Verification", "Bank & Financial", "AML & Compliance", "Document OCR"),
    "Insurance": ("Identity Verification", "Face & Biometric", "Document OCR", "AML & Compliance"),
    "Gig Economy": ("Face & Biometric", "Identity Verification", "Document OCR", "Vehicle & Transport"),
    "Fintech": ("Identity Verification", "Bank & Financial", "Face & Biometric", "Credit & Risk"),
    "E-commerce": ("Identity Verification", "Face & Biometric", "Bank & Financial"),
    "Gaming": ("Identity Verification", "Face & Biometric", "Bank & Financial"),
    "Telecom": ("Identity Verification", "Face & Biometric", "Document OCR"),
    "Healthcare": ("Identity Verification", "Document OCR", "Face & Biometric"),
    "Logistics": ("Identity Verification", "Vehicle & Transport", "Face & Biometric"),
}

INDUSTRY_REQUIREMENTS: dict[str, IndustryRequirements] = {
    "NBFC": IndustryRequirements(
        must_have=("Aadhaar OKYC", "PAN Verification", "Bank Account Verification", "CKYC"),
        recommended=("Face Match", "Selfie Validation", "AML Search", "Credit Score"),
        regulatory=("CKYC Upload", "AML Search", "Aadhaar OKYC"),
        avg_deal_size=150000,
    ),
    "Fintech": IndustryRequirements(
        must_have=("Aadhaar OKYC", "PAN Verification", "Selfie Validation"),
        recommended=("Face Match", "Bank Account Verification", "AML Search"),
        regulatory=("CKYC", "AML Search"),
        avg_deal_size=100000,
    ),
    "Payment Service Provider": IndustryRequirements(
        must_have=("Aadhaar OKYC", "PAN Verification", "Bank Account Verification"),
        recommended=("Selfie Validation", "Face Match", "Merchant Verification"),
        regulatory=("AML Search", "CKYC"),
        avg_deal_size=200000,
    ),
    "Insurance": IndustryRequirements(
        must_have=("Aadhaar OKYC", "PAN Verification", "Face Match"),
        recommended=("Document OCR", "Selfie Validation", "CKYC"),
        regulatory=("CKYC", "AML Search"),
        avg_deal_size=120000,
    ),
    "Brokerage": IndustryRequirements(
        must_have=("Aadhaar OKYC", "PAN Verification", "CKYC", "Digilocker"),
        recommended=("Face Match", "Bank Account Verification", "AML Search"),
        regulatory=("CKYC", "AML Search", "Digilocker"),
        avg_deal_size=180000,
    ),
    "Gig Economy": IndustryRequirements(
        must_have=("Selfie Validation", "Face Match", "DL Verification"),
        recommended=("RC Verification", "Bank Account Verification", "Aadhaar OKYC"),
        regulatory=(),
        avg_deal_size=80000,
    ),
    "Gaming": IndustryRequirements(
        must_have=("Aadhaar OKYC", "PAN Verification", "Selfie Validation"),
        recommended=("Face Match", "Bank Account Verification"),
        regulatory=("Aadhaar OKYC",),
        avg_deal_size=60000,
    ),
    "E-commerce": IndustryRequirements(
        must_have=("GST Verification", "Bank Account Verification"),
        recommended=("Selfie Validation", "Address Verification", "PAN Verification"),
        regulatory=(),
        avg_deal_size=50000,
    ),
    "Healthcare": IndustryRequirements(
        must_have=("Aadhaar OKYC", "Face Match"),
        recommended=("Document OCR", "Selfie Validation"),
        regulatory=(),
        avg_deal_size=40000,
    ),
    GENERAL_SEGMENT: IndustryRequirements(
        must_have=("Aadhaar OKYC", "PAN Verification"),
        recommended=("Selfie Validation", "Bank Account Verification", "Face Match"),
        regulatory=(),
        avg_deal_size=50000,
    ),
}

# Free-text industry label -> segment. First matching row wins.
INDUSTRY_SEGMENT_KEYWORDS: dict[str, tuple[str, ...]] = {
    "NBFC": ("nbfc", "lending"),
    "Banking": ("bank",),
    "Insurance": ("insurance",),
    "Brokerage": ("broker", "stock", "trading"),
    "Payment Service Provider": ("payment", "wallet"),
    "Gig Economy": ("gig", "delivery", "logistics"),
    "Gaming": ("gaming", "fantasy"),
    "E-commerce": ("ecommerce", "e-commerce", "retail"),
    "Wealth Management": ("wealth", "asset"),
    "Healthcare": ("health", "medical"),
    "Telecom": ("telecom",),
    "Fintech": ("fintech",),
}

# Company name -> segment, for targets the database does not know.
NAME_SEGMENT_KEYWORDS: dict[str, tuple[str, ...]] = {
    "NBFC": ("finance", "capital", "lending", "credit", "loan", "money"),
    "Fintech": ("pay", "wallet", "fintech", "bank", "payment"),
    "Insurance": ("insurance", "insure", "life", "health", "policy"),
    "Real Estate": ("realty", "estate", "property", "housing", "home"),
    "Crypto": ("crypto", "coin", "chain", "web3", "defi"),
    "Gaming": ("game", "gaming", "esport", "play"),
    "Telecom": ("telecom", "mobile", "airtel", "jio"),
    "E-commerce": ("mart", "shop", "store", "commerce", "buy"),
}

# Typical monthly revenue per product before size scaling.
BASE_MONTHLY_ESTIMATES: dict[str, float] = {
    "Selfie Validation": 5000,
    "Liveness Check": 3000,
    "Aadhaar OKYC with OTP": 4000,
    "PAN Verification": 2000,
    "Bank Account Verification": 3500,
    "Face Match": 2500,
    "AML Search": 1500,
    "CKYC Search & Download": 2000,
    "Document OCR": 1800,
}

SIZE_MULTIPLIERS: dict[str, float] = {
    "small": 0.2,
    "medium": 0.5,
    "large": 1.0,
    "enterprise": 2.5,
}

# Monthly revenue range per company size.
SIZE_REVENUE_RANGES: dict[str, tuple[int, int]] = {
    "small": (500, 5000),
    "medium": (5000, 25000),
    "large": (25000, 100000),
    "enterprise": (100000, 500000),
}

INDUSTRY_OPTIONS: tuple[str, ...] = (
    "NBFC", "Banking", "Fintech", "Payment Service Provider", "Insurance", "Brokerage",
    "Wealth Management", "Gig Economy", "Gaming", "E-commerce", "Healthcare", "Telecom",
    "Logistics", "Real Estate", "Crypto", "Other",
)


def requirements_for(segment: str | None) -> IndustryRequirements:
    """Return the requirement table for a segment, or the General table."""
    if segment and segment in INDUSTRY_REQUIREMENTS:
        return INDUSTRY_REQUIREMENTS[segment]
    return INDUSTRY_REQUIREMENTS[GENERAL_SEGMENT]


def priority_categories_for(segment: str | None) -> tuple[str, ...]:
    return SEGMENT_PRIORITY_CATEGORIES.get(segment or "", ())
