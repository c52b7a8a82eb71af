import logging
from datetime import date
from typing import Optional

import httpx
from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_validator

from auth import utils as auth_utils
from config import GEMINI_API_KEY, GEMINI_API_URL
from errors import ServiceUnavailable, UpstreamError

# --- CONFIG ---
logger = logging.getLogger("RECOMMENDER")
router = APIRouter(prefix="/recommendations", tags=["AI Recommendations"])

# Opened and closed by the app lifespan in main.py.
http_client: Optional[httpx.AsyncClient] = None

# --- PROMPT ---
RECOMMENDATION_TEMPLATE = """Provide a concise and helpful buying recommendation for the product: "{product}". Include typical uses, key features to look for, and a general opinion on whether it's a good time to buy or if there are alternatives. Today's date is {today}.
I want to buy a {product}. Should I buy it now or wait?
- If it's the right time to buy, reply with: 'Buy now' and 1-2 reasons (e.g., demand, price drop, or seasonal factors).
- If waiting is better, reply with: 'Wait X months' and 1-2 reasons (e.g., upcoming discounts, new models, or festival offers).
- Your recommendation must be based on real-world timing (festivals, seasons, or sales events).
- Example: 'Wait x months. Holi sales are in March, offering discounts on electronics.' Keep it under 100 words.
Don't tell me to wait every time; sometimes it is the best time to buy the product, so tell me to buy now if {today} is the best time to buy {product}.
- Example: 'Don't wait more, it's the best time to buy {product}, the price may increase in x months' Keep it under 100 words.
"""


class RecommendationRequest(BaseModel):
    productName: str

    @field_validator("productName")
    @classmethod
    def check_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Product name is required")
        return v


# --- HELPER FUNCTIONS ---

async def open_client():
    global http_client
    if http_client is None:
        http_client = httpx.AsyncClient()


async def close_client():
    global http_client
    if http_client is not None:
        await http_client.aclose()
        http_client = None


def build_prompt(product_name: str, today: Optional[date] = None) -> str:
    today = today or date.today()
    return RECOMMENDATION_TEMPLATE.format(product=product_name, today=today.isoformat())


def first_candidate_text(result) -> str:
    try:
        text = result["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        text = None
    if not isinstance(text, str):
        logger.error("Gemini response did not contain expected content: %s", result)
        raise UpstreamError("Could not get a recommendation from AI at this time.")
    return text


# --- CORE ENDPOINTS ---

@router.post("/product")
async def recommend_product(
    payload: RecommendationRequest,
    current_user: auth_utils.Identity = Depends(auth_utils.require_roles("buyer")),
):
    """Forwards a buy-now-or-wait question to Gemini and relays the first answer verbatim."""
    client = http_client
    if client is None:
        logger.error("Recommendation requested before the HTTP client was opened")
        raise ServiceUnavailable()

    body = {"contents": [{"role": "user", "parts": [{"text": build_prompt(payload.productName)}]}]}
    try:
        r = await client.post(GEMINI_API_URL, params={"key": GEMINI_API_KEY}, json=body)
        result = r.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.error("Gemini request failed: %s", e)
        raise UpstreamError("Failed to fetch AI recommendation due to server or API error.")

    return {"message": "Recommendation generated", "recommendation": first_candidate_text(result)}
