#!/usr/bin/env python3
# client/premium_view.py
# Derived, display-only numbers for a policy. Nothing here is stored or
# verified on-chain; the figures are illustrative.

import math

DEFAULT_SCORE = 50
DEFAULT_BASE_PREMIUM = 1000
RECENT_WINDOW_SECONDS = 60 * 60 * 24 * 7


def _round_half_up(x):
    # the browser client rounds .5 up, Python's round() would go to even
    return int(math.floor(x + 0.5))


def _clamp(lo, hi, x):
    return max(lo, min(hi, x))


def derive_premium_view(profile, decrypted_score=None):
    """
    Compute the premium breakdown for one policy.

    profile is a profile dict as returned by GetProfile. The score used is:
      - the stored value when the profile is verified,
      - otherwise decrypted_score when given,
      - otherwise 50.
    A base premium of 0 falls back to 1000.

    Returns {"base_premium", "final_discount", "risk_level", "safety_score", "total_savings"}.
    """
    if profile.get("is_verified"):
        score = profile.get("decrypted_discount") or 0
    elif decrypted_score is not None:
        score = decrypted_score
    else:
        score = DEFAULT_SCORE

    base_premium = profile.get("base_premium") or DEFAULT_BASE_PREMIUM

    discount_rate = _clamp(0, 50, (score - 50) * 1.5)
    final_discount = _round_half_up(base_premium * discount_rate / 100)
    risk_level = _clamp(1, 10, _round_half_up((100 - score) / 10))
    safety_score = _clamp(0, 100, score)

    return {
        "base_premium": base_premium,
        "final_discount": final_discount,
        "risk_level": risk_level,
        "safety_score": safety_score,
        "total_savings": final_discount,
    }


def summarize_policies(policies, now):
    """
    Dashboard figures over a list of profile dicts:
    total, verified count, average base premium and policies created in the
    last seven days (relative to `now`, in seconds).
    """
    total = len(policies)
    verified = 0
    premium_sum = 0
    recent = 0
    for p in policies:
        if p.get("is_verified"):
            verified += 1
        premium_sum += p.get("base_premium") or 0
        if now - p.get("timestamp", 0) < RECENT_WINDOW_SECONDS:
            recent += 1

    avg = premium_sum / total if total > 0 else 0
    return {
        "total_policies": total,
        "verified_policies": verified,
        "average_base_premium": avg,
        "recent_policies": recent,
    }
