"""Constant lookup tables used by the stage handlers"""

from types import MappingProxyType
from typing import Mapping


# State code -> option value the funnel's state dropdown expects (no spaces)
STATE_NAMES: Mapping[str, str] = MappingProxyType({
    'AL': 'Alabama',
    'AK': 'Alaska',
    'AZ': 'Arizona',
    'AR': 'Arkansas',
    'CA': 'California',
    'CO': 'Colorado',
    'CT': 'Connecticut',
    'DE': 'Delaware',
    'DC': 'DistrictOfColumbia',
    'FL': 'Florida',
    'GA': 'Georgia',
    'HI': 'Hawaii',
    'ID': 'Idaho',
    'IL': 'Illinois',
    'IN': 'Indiana',
    'IA': 'Iowa',
    'KS': 'Kansas',
    'KY': 'Kentucky',
    'LA': 'Louisiana',
    'ME': 'Maine',
    'MD': 'Maryland',
    'MA': 'Massachusetts',
    'MI': 'Michigan',
    'MN': 'Minnesota',
    'MS': 'Mississippi',
    'MO': 'Missouri',
    'MT': 'Montana',
    'NE': 'Nebraska',
    'NV': 'Nevada',
    'NH': 'NewHampshire',
    'NJ': 'NewJersey',
    'NM': 'NewMexico',
    'NY': 'NewYork',
    'NC': 'NorthCarolina',
    'ND': 'NorthDakota',
    'OH': 'Ohio',
    'OK': 'Oklahoma',
    'OR': 'Oregon',
    'PA': 'Pennsylvania',
    'RI': 'RhodeIsland',
    'SC': 'SouthCarolina',
    'SD': 'SouthDakota',
    'TN': 'Tennessee',
    'TX': 'Texas',
    'UT': 'Utah',
    'VT': 'Vermont',
    'VA': 'Virginia',
    'WA': 'Washington',
    'WV': 'WestVirginia',
    'WI': 'Wisconsin',
    'WY': 'Wyoming',
})

# Caller coverage preference -> data-pkg identifier on the coverage page
COVERAGE_PACKAGES: Mapping[str, str] = MappingProxyType({
    'Basic': 'Basic',
    'Standard': 'Standard',
    'Enhanced': 'Standard',
    'Premium': 'Optimal',
    'Optimal': 'Optimal',
})
DEFAULT_COVERAGE_PACKAGE = 'Standard'

# Caller sort key -> option value of the results sort dropdown
QUOTE_SORT_KEYS: Mapping[str, str] = MappingProxyType({
    'price': 'TotalPremium',
    'downPayment': 'DownPayment',
    'monthly': 'PaymentAmount',
})


def state_option(state_code: str) -> str:
    """Funnel option for a state code; unknown codes pass through unchanged"""
    if not state_code:
        return state_code
    return STATE_NAMES.get(state_code.upper(), state_code)


def coverage_package(preference: str) -> str:
    if not preference:
        return DEFAULT_COVERAGE_PACKAGE
    for name, package in COVERAGE_PACKAGES.items():
        if name.lower() == preference.strip().lower():
            return package
    return DEFAULT_COVERAGE_PACKAGE
