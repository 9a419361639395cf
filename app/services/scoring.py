"""Creditworthiness scoring for tokenized domains.

Every score here is a fixed weighted formula over activity counts pulled from
the Doma registry. Sub-scores stay within 0-100; the overall score is scaled
to 0-1000 and mapped onto a lending risk tier.
"""
from __future__ import annotations

import math
import re
from typing import Any, Dict, Iterable, List

import pandas as pd

from app.domain.registry import NameActivity, TokenActivity


ACTIVITY_COLUMNS = ["type", "buyer", "seller", "amount"]

# Off-chain signals without a data source yet; scored as constants
MARKET_DEMAND_SCORE = 75
WEB_PRESENCE_SCORE = 60

OVERALL_WEIGHTS = {
    "token": 0.25,
    "name": 0.15,
    "liquidity": 0.15,
    "ownership": 0.10,
    "quality": 0.20,
    "market_demand": 0.10,
    "web_presence": 0.05,
}

RISK_TIERS = [
    # (min score, tier, max LTV %, interest rate %, staking APY %)
    (800, "Low Risk", 75, 6.5, 15),
    (600, "Medium Risk", 60, 9.5, 12),
    (0, "High Risk", 40, 13.5, 8),
]


# ----------------
# HELPER FUNCTIONS
# ----------------

def round_half_up(value: float) -> int:
    """Round .5 upwards, matching the scores the frontend was built against."""
    return int(math.floor(value + 0.5))


def parse_amount(value: Any) -> float:
    """Parse a payment amount; unparseable or missing amounts count as 0."""
    if value is None:
        return 0.0
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if math.isnan(amount) else amount


def activity_frame(activities: Iterable[Any]) -> pd.DataFrame:
    """Flatten activity records into a DataFrame with one row per activity.

    Accepts registry models or plain dicts in the wire format.
    """
    rows = []
    for activity in activities:
        if isinstance(activity, dict):
            payment = activity.get("payment") or {}
            rows.append({
                "type": activity.get("type"),
                "buyer": activity.get("buyer"),
                "seller": activity.get("seller"),
                "amount": payment.get("amount"),
            })
        else:
            rows.append({
                "type": activity.type,
                "buyer": getattr(activity, "buyer", None),
                "seller": getattr(activity, "seller", None),
                "amount": getattr(activity, "amount", None),
            })
    return pd.DataFrame(rows, columns=ACTIVITY_COLUMNS)


def _count(df: pd.DataFrame, activity_type: str) -> int:
    return int((df["type"] == activity_type).sum())


def _of_type(df: pd.DataFrame, activity_type: str) -> pd.DataFrame:
    return df[df["type"] == activity_type]


def _unique_non_empty(series: pd.Series) -> int:
    values = series.dropna()
    return int(values[values.astype(str) != ""].nunique())


# ----------------
# ON-CHAIN METRICS
# ----------------

def score_token_activities(activities: List[TokenActivity]) -> Dict[str, Any]:
    """Score marketplace history of the domain token.

    Returns:
        Dict with the weighted ``score`` and a per-factor ``breakdown``
    """
    df = activity_frame(activities)
    minted = _count(df, "MINTED")
    transferred = _count(df, "TRANSFERRED")
    listed = _count(df, "LISTED")
    offers = _count(df, "OFFER_RECEIVED")
    purchased = _count(df, "PURCHASED")
    cancelled_listings = _count(df, "LISTING_CANCELLED")
    cancelled_offers = _count(df, "OFFER_CANCELLED")

    if transferred == 0:
        transfer = 50
    elif transferred <= 5:
        transfer = 85
    elif transferred <= 10:
        transfer = 75
    else:
        transfer = 65

    if listed == 0:
        listing = 60
    elif listed <= 3:
        listing = 90
    elif listed <= 8:
        listing = 85
    else:
        listing = 95

    if offers == 0:
        offer = 60
    elif offers <= 3:
        offer = 75
    elif offers <= 8:
        offer = 85
    elif offers <= 15:
        offer = 95
    else:
        offer = 100

    if purchased == 0:
        purchase = 70
    elif purchased == 1:
        purchase = 80
    elif purchased <= 4:
        purchase = 90
    else:
        purchase = 95

    minted_score = 100 if minted > 0 else 0
    cancelled_listing = 100 if listed == 0 else 100 - (cancelled_listings / listed * 30)
    cancelled_offer = 100 if offers == 0 else 100 - (cancelled_offers / offers * 30)
    # Cancellations can outnumber listings when history is truncated at 100 records
    cancelled_listing = max(0.0, cancelled_listing)
    cancelled_offer = max(0.0, cancelled_offer)

    score = round_half_up(
        minted_score * 0.1 + transfer * 0.2 + listing * 0.15 +
        offer * 0.2 + purchase * 0.25 + cancelled_listing * 0.05 +
        cancelled_offer * 0.05
    )

    purchases = _of_type(df, "PURCHASED")
    last_price = purchases["amount"].tolist()[0] if not purchases.empty else None
    if last_price is None or (isinstance(last_price, float) and math.isnan(last_price)):
        last_price = "N/A"

    return {
        "score": score,
        "breakdown": {
            "mintedActivity": {"count": minted, "score": minted_score, "weight": 10},
            "transferActivity": {"count": transferred, "score": transfer, "weight": 20},
            "listingActivity": {"count": listed, "score": listing, "weight": 15},
            "offerActivity": {"count": offers, "score": offer, "weight": 20},
            "purchaseActivity": {"count": purchased, "score": purchase, "weight": 25, "lastPrice": last_price},
            "cancelledListings": {"count": cancelled_listings, "score": round_half_up(cancelled_listing), "weight": 5},
            "cancelledOffers": {"count": cancelled_offers, "score": round_half_up(cancelled_offer), "weight": 5},
        },
    }


def score_name_activities(activities: List[NameActivity]) -> Dict[str, Any]:
    """Score registry-level history: claim, renewals, tokenization."""
    df = activity_frame(activities)
    claimed = _count(df, "CLAIMED")
    renewed = _count(df, "RENEWED")
    tokenized = _count(df, "TOKENIZED")
    detokenized = _count(df, "DETOKENIZED")

    claimed_score = 100 if claimed > 0 else 0
    if renewed == 0:
        renewed_score = 70
    elif renewed == 1:
        renewed_score = 85
    else:
        renewed_score = 95
    tokenized_score = 100 if tokenized > 0 else 0
    detokenized_score = max(0, 100 - detokenized * 20)

    score = round_half_up(
        claimed_score * 0.3 + renewed_score * 0.25 +
        tokenized_score * 0.25 + detokenized_score * 0.2
    )

    return {
        "score": score,
        "breakdown": {
            "claimedActivity": {"count": claimed, "score": claimed_score, "weight": 30},
            "renewedActivity": {"count": renewed, "score": renewed_score, "weight": 25},
            "tokenizedActivity": {"count": tokenized, "score": tokenized_score, "weight": 25},
            "detokenizedActivity": {"count": detokenized, "score": detokenized_score, "weight": 20},
        },
    }


def calculate_liquidity(activities: List[TokenActivity]) -> Dict[str, Any]:
    """Liquidity from purchase volume, distinct buyers and offer interest."""
    df = activity_frame(activities)
    purchases = _of_type(df, "PURCHASED")
    offers = _count(df, "OFFER_RECEIVED")

    total_volume = float(purchases["amount"].map(parse_amount).sum()) if not purchases.empty else 0.0
    unique_buyers = _unique_non_empty(purchases["buyer"])
    unique_sellers = _unique_non_empty(purchases["seller"])

    score = 60
    if len(purchases) > 0:
        score += 15
    if unique_buyers > 2:
        score += 10
    if offers > 5:
        score += 10

    return {
        "score": min(100, score),
        "totalVolume": f"{total_volume:.4f} ETH",
        "uniqueBuyers": unique_buyers,
        "uniqueSellers": unique_sellers,
    }


def calculate_ownership(activities: List[TokenActivity]) -> Dict[str, Any]:
    """Ownership stability: fewer transfers means a steadier holder."""
    transfers = _count(activity_frame(activities), "TRANSFERRED")

    score = 70
    if transfers <= 5:
        score += 15
    if transfers <= 3:
        score += 10

    if transfers <= 3:
        frequency = "Low"
    elif transfers <= 8:
        frequency = "Medium"
    else:
        frequency = "High"

    return {
        "score": min(100, score),
        "transferFrequency": frequency,
        "transferCount": transfers,
    }


# ----------------
# OFF-CHAIN METRICS
# ----------------

def assess_domain_quality(name: str) -> Dict[str, Any]:
    """Heuristic quality of the second-level label (length, digits)."""
    label = name.split(".")[0]
    length = len(label)

    if length <= 3:
        length_score = 100
    elif length <= 5:
        length_score = 95
    elif length <= 8:
        length_score = 85
    elif length <= 12:
        length_score = 75
    elif length <= 15:
        length_score = 65
    else:
        length_score = 50

    brandability = 70 if re.search(r"\d", label) else 85
    memorability = 90 if length <= 6 else 75

    score = round_half_up((length_score + brandability + memorability + 88) / 4)

    return {
        "score": score,
        "length": length,
        "brandability": brandability,
        "memorability": memorability,
    }


# ----------------
# AGGREGATION
# ----------------

def determine_risk_tier(score: int) -> Dict[str, Any]:
    """Map an overall 0-1000 score to lending terms."""
    for minimum, tier, max_ltv, interest_rate, staking_apy in RISK_TIERS:
        if score >= minimum:
            break
    return {
        "riskTier": tier,
        "maxLTV": max_ltv,
        "interestRate": interest_rate,
        "stakingAPY": staking_apy,
    }


def tier_name(score: int) -> str:
    return determine_risk_tier(score)["riskTier"]


def overall_score(token: int, name: int, liquidity: int, ownership: int, quality: int) -> int:
    """Weighted 0-100 composite, scaled to 0-1000 in steps of 10."""
    w = OVERALL_WEIGHTS
    composite = (
        token * w["token"] +
        name * w["name"] +
        liquidity * w["liquidity"] +
        ownership * w["ownership"] +
        quality * w["quality"] +
        MARKET_DEMAND_SCORE * w["market_demand"] +
        WEB_PRESENCE_SCORE * w["web_presence"]
    )
    return round_half_up(composite) * 10


def quick_score(name_score: int, quality_score: int) -> int:
    """Score without token history: name activity and label quality only."""
    return round_half_up((name_score * 0.4 + quality_score * 0.6) * 10)


def average_purchase_price(activities: List[TokenActivity]) -> float:
    """Mean purchase price in ETH; 0 when the token never sold."""
    purchases = _of_type(activity_frame(activities), "PURCHASED")
    if purchases.empty:
        return 0.0
    return float(purchases["amount"].map(parse_amount).mean())


def collateral_value(avg_price: float, quality_score: int, eth_usd_price: float) -> int:
    """USD collateral value: last sales when available, label quality otherwise."""
    if avg_price > 0:
        return round_half_up(avg_price * eth_usd_price)
    return round_half_up(quality_score * 50)


def max_loan_amount(collateral: int, max_ltv: int) -> int:
    return math.floor(collateral * (max_ltv / 100))


def build_recommendations(
    overall: int,
    risk: Dict[str, Any],
    max_loan: int,
    token_activities: List[TokenActivity],
    quality: Dict[str, Any],
) -> Dict[str, Any]:
    """Loan terms, staking terms and the headline risk factors."""
    df = activity_frame(token_activities)
    transfers = _count(df, "TRANSFERRED")
    offers = _count(df, "OFFER_RECEIVED")

    if overall >= 800:
        bonus_apy = 3
    elif overall >= 600:
        bonus_apy = 2
    else:
        bonus_apy = 1

    return {
        "loanTerms": {
            "recommended": "Approved for lending" if overall >= 600 else "Requires manual review",
            "maxLoan": max_loan,
            "ltv": risk["maxLTV"],
            "interestRate": risk["interestRate"],
            "collateralizationRatio": round_half_up(10000 / risk["maxLTV"]),
        },
        "stakingTerms": {
            "recommended": "Qualified for staking" if overall >= 500 else "Not recommended",
            "baseAPY": risk["stakingAPY"],
            "bonusAPY": bonus_apy,
            "lockPeriod": "30 days",
            "earlyWithdrawalPenalty": 5,
        },
        "riskFactors": [
            {
                "factor": f"{transfers} transfers detected",
                "impact": "Positive" if transfers <= 5 else "Negative",
                "severity": "low",
            },
            {
                "factor": f"{offers} offers received",
                "impact": "Positive" if offers > 5 else "Negative",
                "severity": "medium",
            },
            {
                "factor": f"Domain length: {quality['length']} characters",
                "impact": "Positive" if quality["length"] <= 8 else "Negative",
                "severity": "low",
            },
        ],
    }


def score_domain(
    name: str,
    name_activities: List[NameActivity],
    token_activities: List[TokenActivity],
    eth_usd_price: float,
) -> Dict[str, Any]:
    """Run every metric and assemble the scoring part of an analysis.

    Returns:
        Dict with overall score, tier, collateral and the metric sections
    """
    token = score_token_activities(token_activities)
    name_result = score_name_activities(name_activities)
    liquidity = calculate_liquidity(token_activities)
    ownership = calculate_ownership(token_activities)
    quality = assess_domain_quality(name)

    overall = overall_score(
        token["score"], name_result["score"], liquidity["score"],
        ownership["score"], quality["score"]
    )
    risk = determine_risk_tier(overall)
    collateral = collateral_value(average_purchase_price(token_activities), quality["score"], eth_usd_price)
    max_loan = max_loan_amount(collateral, risk["maxLTV"])

    return {
        "overallScore": overall,
        "riskTier": risk["riskTier"],
        "collateralValue": collateral,
        "maxLTV": risk["maxLTV"],
        "maxLoanAmount": max_loan,
        "stakingAPY": risk["stakingAPY"],
        "onChainMetrics": {
            "tokenActivity": token,
            "nameActivity": name_result,
            "liquidityMetrics": liquidity,
            "ownershipStability": ownership,
        },
        "offChainMetrics": {
            "domainQuality": quality,
        },
        "recommendations": build_recommendations(overall, risk, max_loan, token_activities, quality),
    }
