from fastapi import APIRouter

from dependencies import AnalyzerDep
from schemas import FoodAnalysis, ImageAnalysisRequest
from .auth import CurrentUserDep

router = APIRouter(tags=["ai"])


@router.post("/analyze-image", response_model=FoodAnalysis)
def analyze_image(payload: ImageAnalysisRequest, analyzer: AnalyzerDep, current: CurrentUserDep):
    """
    Suggest title, description, category, quantity, unit and serving size
    from a photo, to pre-fill the donate form.
    """
    return analyzer.analyze(payload.image)
