"""LinkedIn job search URL construction."""

from urllib.parse import urlencode

from jobharvest.models import ScrapeOptions

SEARCH_BASE_URL = "https://www.linkedin.com/jobs/search"
SEARCH_TRACKING = "public_jobs_jobs-search-bar_search-submit"

EXPERIENCE_CODES = {
    "Internship": "1",
    "Entry Level": "2",
    "Associate": "3",
    "Mid-Senior": "4",
    "Director": "5",
    "Executive": "6",
}

EMPLOYMENT_CODES = {
    "Full-time": "F",
    "Part-time": "P",
    "Contract": "C",
    "Temporary": "T",
    "Volunteer": "V",
    "Internship": "I",
}

# "Any time" maps to no filter at all.
DATE_POSTED_CODES = {
    "Past 24 hours": "r86400",
    "Past Week": "r604800",
    "Past Month": "r2592000",
    "Any time": "",
}

REMOTE_CODES = {
    "On-site": "1",
    "Remote": "2",
    "Hybrid": "3",
}


def _codes(values: list[str], mapping: dict[str, str]) -> list[str]:
    return [mapping[v] for v in values if v in mapping]


def build_search_url(options: ScrapeOptions) -> str:
    """Build the public job search URL for a set of filters.

    Unknown filter values are dropped; absent filters leave out their parameter.
    """
    params: list[tuple[str, str]] = [("trk", SEARCH_TRACKING)]

    if options.position:
        params.append(("keywords", options.position))
    if options.location:
        params.append(("location", options.location))

    experience = _codes(options.experience_level, EXPERIENCE_CODES)
    if experience:
        params.append(("f_E", ",".join(experience)))

    employment = _codes(options.employment_type, EMPLOYMENT_CODES)
    if employment:
        params.append(("f_JT", ",".join(employment)))

    if options.date_posted and DATE_POSTED_CODES.get(options.date_posted):
        params.append(("f_TPR", DATE_POSTED_CODES[options.date_posted]))

    if options.remote_option and options.remote_option in REMOTE_CODES:
        params.append(("f_WT", REMOTE_CODES[options.remote_option]))

    if options.salary_min:
        params.append(("f_SB2", str(options.salary_min)))

    return f"{SEARCH_BASE_URL}?{urlencode(params)}"
