"""
Process-wide wiring. One instance of each service, shared by the HTTP
routers, the websocket endpoint and the scheduler callbacks.
"""
from app.api.broadcast import ConnectionManager
from app.asr.vosk_adapter import VoskTranscriber
from app.core.session_service import SessionService
from app.llm.patient import PatientContextClient
from app.pipeline.context import ContextAggregator
from app.pipeline.scheduler import SessionBatchScheduler
from app.pipeline.suggestions import SuggestionPipeline
from app.storage.session_registry import SessionRegistry
from app.vectorstore.chroma_store import KnowledgeIndex

registry = SessionRegistry()
connections = ConnectionManager()

knowledge_index = KnowledgeIndex()
patient_client = PatientContextClient()
transcriber = VoskTranscriber()

aggregator = ContextAggregator(
    search_knowledge=knowledge_index.search_for_context,
    fetch_patient=patient_client.fetch_patient_context,
)

pipeline = SuggestionPipeline(registry=registry, aggregator=aggregator)

scheduler = SessionBatchScheduler(
    generate=pipeline.generate_suggestions,
    broadcast=connections.broadcast,
)

sessions = SessionService(
    registry=registry,
    scheduler=scheduler,
    pipeline=pipeline,
    transcribe=transcriber.transcribe,
    broadcast=connections.broadcast,
)
