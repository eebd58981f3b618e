from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .controllers import chat_summary

router = APIRouter()


@router.get("/metrics")
def metrics():
	return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/metrics/summary")
def metrics_summary():
	"""Turn, run and per-stage counts as JSON."""
	return chat_summary()
