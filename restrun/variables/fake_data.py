"""Fake person, contact and internet data for ``$random*`` providers.

Values come from Faker. The generator is reseeded from the caller's random
source on every call, so output is reproducible for a seeded ``rng``.
"""

import random
from typing import Dict, Optional

from faker import Faker

LOCALE = "en_US"

# Accessor name -> Faker method. Each key is reachable as "$randomFirstName"
# and "$random.firstName".
FAKERS: Dict[str, str] = {
    "firstName": "first_name",
    "lastName": "last_name",
    "fullName": "name",
    "jobTitle": "job",
    "phoneNumber": "phone_number",
    "streetAddress": "street_address",
    "city": "city",
    "state": "state",
    "zipCode": "zipcode",
    "country": "country",
    "url": "url",
    "domainName": "domain_name",
    "userAgent": "user_agent",
    "macAddress": "mac_address",
}

_faker: Optional[Faker] = None


def _seeded_faker(rng: random.Random) -> Faker:
    global _faker
    if _faker is None:
        _faker = Faker(LOCALE)
    _faker.seed_instance(rng.getrandbits(64))
    return _faker


def generate(accessor: str, rng: random.Random) -> str:
    """Produce one fake value for an accessor listed in ``FAKERS``."""
    return str(getattr(_seeded_faker(rng), FAKERS[accessor])())
