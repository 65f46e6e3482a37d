"""
Sample companies and job postings for research tests.

Provides evidence across distinct profiles:
- Acme Logistics: government contractor with legacy tooling and
  high-volume data-entry hiring (expected high potential)
- Brightside Retail: consumer brand with a modern stack
- Quiet Co: no evidence at all (exercises every empty-facet path)

Each fixture is built fresh per call so tests can mutate the result.
"""

from typing import List

from src.common.types import (
    ArchivedSnapshot,
    CompanyIdentity,
    CorporateProfile,
    EvidenceBundle,
    JobPosting,
    NewsItem,
    ProcurementRecord,
    SocialProfile,
    Technology,
)

ACME = "Acme Logistics"
BRIGHTSIDE = "Brightside Retail"


def acme_postings() -> List[JobPosting]:
    return [
        JobPosting(
            title="Data Entry Specialist",
            company=ACME,
            url="https://jobs.example.com/acme/1",
            location="Remote",
            date="2026-09-01",
            text="High volume data entry and spreadsheet reconciliation. Manual process heavy.",
            company_url="https://www.acmelogistics.com",
        ),
        JobPosting(
            title="Operations Coordinator",
            company=ACME,
            url="https://jobs.example.com/acme/2",
            location="Chicago, IL",
            date="2026-09-03",
            text="Coordinate shipments, track inventory and report on delivery metrics.",
            company_url="https://www.acmelogistics.com",
        ),
        JobPosting(
            title="Customer Support Representative",
            company=ACME,
            url="https://jobs.example.com/acme/3",
            location="Remote",
            date="2026-09-05",
            text="Handle numerous support tickets in a fast-paced environment.",
        ),
        JobPosting(
            title="Billing Clerk",
            company=ACME,
            url="https://jobs.example.com/acme/4",
            location="Chicago, IL",
            date="2026-09-07",
            text="Invoice processing and filing.",
        ),
        JobPosting(
            title="Account Manager",
            company=ACME,
            url="https://jobs.example.com/acme/5",
            location="Remote",
            date="2026-09-08",
            text="Enterprise account service.",
        ),
    ]


def acme_bundle() -> EvidenceBundle:
    return EvidenceBundle(
        identity=CompanyIdentity(
            name=ACME, domain="acmelogistics.com", url="https://www.acmelogistics.com"
        ),
        profile=CorporateProfile(
            description="Freight brokerage and logistics services.",
            industry="Logistics",
            employee_count="200-500",
            founded="2004",
            url="https://www.acmelogistics.com/about",
        ),
        news=[
            NewsItem(
                title="Acme Logistics announces expansion into new market",
                url="https://news.example.com/acme-expansion",
                date="2026-08-15",
            ),
        ],
        job_postings=acme_postings(),
        technologies=[
            Technology(name="Excel", category="Productivity"),
            Technology(name="Salesforce", category="CRM"),
            Technology(name="Slack", category="Communication"),
        ],
        social_profiles=[
            SocialProfile(platform="LinkedIn", url="https://linkedin.com/company/acme", followers=4200),
        ],
        procurement=[
            ProcurementRecord(
                title="Freight services",
                agency="GSA",
                amount=250000.0,
                date="2025-11-01",
                url="https://usaspending.example.com/award/1",
            ),
        ],
        snapshots=[
            ArchivedSnapshot(url="https://web.archive.org/2019/acme", timestamp="2019-05-01"),
            ArchivedSnapshot(url="https://web.archive.org/2026/acme", timestamp="2026-05-01"),
        ],
    ).derive_evidence()


def brightside_bundle() -> EvidenceBundle:
    return EvidenceBundle(
        identity=CompanyIdentity(name=BRIGHTSIDE, domain="brightside.shop", url="https://brightside.shop"),
        profile=CorporateProfile(description="Online home goods retailer.", industry="Retail"),
        technologies=[
            Technology(name="Shopify", category="Ecommerce"),
            Technology(name="AWS Cloud", category="Cloud"),
            Technology(name="HubSpot", category="CRM"),
            Technology(name="Looker Analytics", category="Analytics"),
            Technology(name="Jira", category="Development"),
        ],
        social_profiles=[
            SocialProfile(platform="Instagram", url="https://instagram.com/brightside", followers=64000),
        ],
    ).derive_evidence()


def empty_bundle(name: str = "Quiet Co") -> EvidenceBundle:
    return EvidenceBundle(identity=CompanyIdentity(name=name))


def search_postings(acme_count: int = 15, brightside_count: int = 10) -> List[JobPosting]:
    """Postings for an opportunity search spread across Acme and Brightside."""
    postings = [
        JobPosting(
            title=f"Data Entry Clerk {i}",
            company=ACME,
            url=f"https://jobs.example.com/acme/search/{i}",
            location="Remote",
            text="Repetitive data entry and report preparation.",
            company_url="https://www.acmelogistics.com",
        )
        for i in range(acme_count)
    ]
    postings.extend(
        JobPosting(
            title=f"Customer Service Associate {i}",
            company=BRIGHTSIDE,
            url=f"https://jobs.example.com/brightside/search/{i}",
            location="Remote",
            text="Answer customer emails and process returns.",
        )
        for i in range(brightside_count)
    )
    return postings
