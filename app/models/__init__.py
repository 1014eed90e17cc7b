from app.models.ai_model import AiModel
from app.models.brand import Brand, BrandSubreddit, Competitor
from app.models.brand_mention import BrandMention
from app.models.brand_prompt import BrandPrompt, BrandPromptResource
from app.models.competitive_stat import BrandCompetitiveStat
from app.models.post import Post, PostCitation, PostPrompt

__all__ = [
    "AiModel",
    "Brand",
    "BrandCompetitiveStat",
    "BrandMention",
    "BrandPrompt",
    "BrandPromptResource",
    "BrandSubreddit",
    "Competitor",
    "Post",
    "PostCitation",
    "PostPrompt",
]
