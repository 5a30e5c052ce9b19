"""PLU (produce lookup) code helpers."""

import re

_PLU_PATTERN = re.compile(r"^\d{4,5}$")

# IFPS codes mapped to USDA search terms. Five-digit codes starting with 9
# are the organic variant of the trailing four digits.
PLU_SEARCH_TERMS: dict[str, str] = {
    "4011": "banana raw",
    "3283": "apple honeycrisp raw",
    "4015": "apple gala raw",
    "4016": "apple golden delicious raw",
    "4017": "apple granny smith raw",
    "4130": "apple granny smith raw",
    "4131": "apple gala raw",
    "4133": "apple golden delicious raw",
    "4135": "apple red delicious raw",
    "3107": "orange navel raw",
    "4012": "orange navel raw",
    "4409": "pear bartlett raw",
    "4410": "pear bosc raw",
    "4416": "pear anjou raw",
    "4023": "grape red seedless raw",
    "4499": "grape green seedless raw",
    "4087": "strawberry raw",
    "4033": "blueberry raw",
    "4036": "raspberry raw",
    "4044": "peach raw",
    "4042": "nectarine raw",
    "4043": "plum raw",
    "4031": "cantaloupe raw",
    "4032": "watermelon raw",
    "4050": "honeydew melon raw",
    "4048": "lime raw",
    "4053": "lemon raw",
    "3023": "grapefruit raw",
    "4030": "kiwi raw",
    "4052": "mango raw",
    "4229": "pineapple raw",
    "4061": "lettuce iceberg raw",
    "4062": "lettuce romaine raw",
    "4076": "spinach raw",
    "3133": "kale raw",
    "4060": "broccoli raw",
    "4069": "cauliflower raw",
    "4064": "cabbage green raw",
    "4072": "carrot raw",
    "4073": "celery raw",
    "4082": "onion yellow raw",
    "4159": "onion red raw",
    "4663": "onion white raw",
    "4088": "potato red raw",
    "4091": "sweet potato raw",
    "4065": "pepper bell green raw",
    "4688": "pepper bell red raw",
    "4689": "pepper bell yellow raw",
    "4690": "pepper bell orange raw",
    "4664": "tomato raw",
    "4799": "tomato cherry raw",
    "4078": "avocado raw",
    "4225": "zucchini raw",
}


def is_valid_plu_code(code: str) -> bool:
    """Return True when the code has the 4-5 digit PLU shape."""
    return bool(_PLU_PATTERN.match(code))


def normalize_plu_code(code: str) -> str | None:
    """Strip whitespace and return the code if it is a valid PLU."""
    cleaned = code.strip()
    return cleaned if is_valid_plu_code(cleaned) else None


def is_organic(code: str) -> bool:
    return len(code) == 5 and code.startswith("9")


def plu_search_term(code: str) -> str | None:
    """Return the USDA search term for a PLU code, if known."""
    base = code[1:] if is_organic(code) else code
    term = PLU_SEARCH_TERMS.get(base)
    if term is None:
        return None
    return f"{term} organic" if is_organic(code) else term


def plu_display_name(code: str) -> str | None:
    """Return a title-cased produce name such as ``Banana (Organic)``."""
    base = code[1:] if is_organic(code) else code
    term = PLU_SEARCH_TERMS.get(base)
    if term is None:
        return None
    name = " ".join(word.capitalize() for word in term.replace(" raw", "").split())
    return f"{name} (Organic)" if is_organic(code) else name
