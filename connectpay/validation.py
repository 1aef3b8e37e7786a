"""Request body validation for the Connect and checkout APIs.

Each parse_* function takes the decoded JSON body (or query args) and
returns a cleaned dict, or raises RequestValidationError carrying a list
of {path, message} issues that the blueprint sends back with a 400.
"""

from urllib.parse import urlparse

ACCOUNT_REF_MESSAGE = "Either userId or stripeAccountId is required"


class RequestValidationError(ValueError):
    def __init__(self, issues):
        super().__init__("; ".join(i["message"] for i in issues))
        self.issues = issues


def _issue(path, message):
    return {"path": [path] if path else [], "message": message}


def _string(data, key, issues, required=False):
    value = data.get(key)
    if value is None:
        if required:
            issues.append(_issue(key, "Required"))
        return None
    if not isinstance(value, str) or not value:
        issues.append(_issue(key, "Expected a non-empty string"))
        return None
    return value


def _integer(data, key, issues, default=None, minimum=None, maximum=None):
    value = data.get(key)
    if value is None:
        if default is None:
            issues.append(_issue(key, "Required"))
        return default
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        issues.append(_issue(key, "Expected an integer"))
        return None
    if minimum is not None and value < minimum:
        issues.append(_issue(key, f"Must be at least {minimum}"))
    if maximum is not None and value > maximum:
        issues.append(_issue(key, f"Must be at most {maximum}"))
    return value


def _percent(data, key, issues, default):
    value = data.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.append(_issue(key, "Expected a number"))
        return None
    if not 0 <= value <= 100:
        issues.append(_issue(key, "Must be between 0 and 100"))
    return value


def is_absolute_url(value):
    """True for absolute http(s) URLs only."""
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _url(data, key, issues, required=False):
    value = _string(data, key, issues, required=required)
    if value is not None and not is_absolute_url(value):
        issues.append(_issue(key, "Invalid URL"))
        return None
    return value


def _account_ref(data, issues):
    user_id = _string(data, "userId", issues)
    stripe_account_id = _string(data, "stripeAccountId", issues)
    if not user_id and not stripe_account_id and not issues:
        issues.append(_issue(None, ACCOUNT_REF_MESSAGE))
    return user_id, stripe_account_id


def _raise_if(issues):
    if issues:
        raise RequestValidationError(issues)


def parse_create_account(data):
    issues = []
    user_id = _string(data, "userId", issues, required=True)
    _raise_if(issues)
    return {"user_id": user_id}


def parse_account_ref(data):
    """Body/query for status and login-link: userId or stripeAccountId."""
    issues = []
    user_id, stripe_account_id = _account_ref(data, issues)
    _raise_if(issues)
    return {"user_id": user_id, "stripe_account_id": stripe_account_id}


def parse_account_link(data):
    issues = []
    user_id, stripe_account_id = _account_ref(data, issues)
    refresh_url = _url(data, "refreshUrl", issues, required=True)
    return_url = _url(data, "returnUrl", issues, required=True)
    _raise_if(issues)
    return {
        "user_id": user_id,
        "stripe_account_id": stripe_account_id,
        "refresh_url": refresh_url,
        "return_url": return_url,
    }


def parse_checkout(data, default_fee_percent):
    issues = []
    user_id, stripe_account_id = _account_ref(data, issues)
    cleaned = {
        "user_id": user_id,
        "stripe_account_id": stripe_account_id,
        "buyer_id": _string(data, "buyerId", issues),
        "price_id": _string(data, "priceId", issues, required=True),
        "quantity": _integer(data, "quantity", issues, default=1, minimum=1, maximum=99),
        "fee_percent": _percent(data, "feePercent", issues, default_fee_percent),
        "success_url": _url(data, "successUrl", issues),
        "cancel_url": _url(data, "cancelUrl", issues),
    }
    _raise_if(issues)
    return cleaned


def parse_payment_intent(data, default_fee_percent):
    issues = []
    user_id, stripe_account_id = _account_ref(data, issues)
    currency = _string(data, "currency", issues, required=True)
    if currency is not None and len(currency) != 3:
        issues.append(_issue("currency", "Must be a 3-letter ISO code"))
    cleaned = {
        "user_id": user_id,
        "stripe_account_id": stripe_account_id,
        "amount": _integer(data, "amount", issues, minimum=1),
        "currency": currency.lower() if currency else None,
        "buyer_id": _string(data, "buyerId", issues),
        "fee_percent": _percent(data, "feePercent", issues, default_fee_percent),
    }
    _raise_if(issues)
    return cleaned
