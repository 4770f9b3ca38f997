"""
api/routes/feedback.py -- Feedback submission endpoints for signed-in users.

Routes:
  POST /api/feedback/submit        -- submit feedback as the caller
  GET  /api/feedback/my-feedbacks  -- the caller's own feedback, newest first

The submitter is always the token's subject; a body can never submit on
someone else's behalf. image_url is an opaque client-supplied string --
image upload itself is not handled by this service.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import FeedbackCreate, FeedbackResponse, MessageResponse
from auth.dependencies import get_identity
from auth.models import Identity
from feedback.models import Feedback
from feedback.store import FeedbackStore

# Auth policy:
# - POST /api/feedback/submit:       requires auth (get_identity)
# - GET  /api/feedback/my-feedbacks: requires auth (get_identity), scoped to identity.user_id
router = APIRouter()


@router.post("/feedback/submit", response_model=MessageResponse)
def submit_feedback(
    request: Request,
    body: FeedbackCreate,
    identity: Identity = Depends(get_identity),
) -> MessageResponse:
    store: FeedbackStore = request.app.state.feedback_store
    feedback_id = store.create(
        Feedback(
            heading=body.heading,
            category=body.category,
            subcategory=body.subcategory,
            message=body.message,
            image_url=body.image_url,
            user_id=identity.user_id,
        )
    )
    return MessageResponse(message="Feedback submitted successfully.", id=feedback_id)


@router.get("/feedback/my-feedbacks", response_model=list[FeedbackResponse])
def my_feedbacks(request: Request, identity: Identity = Depends(get_identity)) -> list[FeedbackResponse]:
    store: FeedbackStore = request.app.state.feedback_store
    return [FeedbackResponse.from_feedback(f) for f in store.list_for_user(identity.user_id)]
