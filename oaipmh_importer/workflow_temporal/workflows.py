from datetime import timedelta
from temporalio import workflow
from temporalio.common import RetryPolicy

# Import our activity, passing it through the sandbox
with workflow.unsafe.imports_passed_through():
    from .activities import import_oaipmh


@workflow.defn
class ImportOaipmhWorkflow:
    @workflow.run
    async def run(self, payload: dict) -> dict:
        # a failed run is terminal; the circuit breaker already retried
        result = await workflow.execute_activity(
            import_oaipmh,
            payload,
            start_to_close_timeout=timedelta(hours=12),
            retry_policy=RetryPolicy(maximum_attempts=1)
        )

        return result
