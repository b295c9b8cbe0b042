from temporalio import activity

from ..lambda_function import handle_pipe
from ..pipe import StoragePipe


@activity.defn
async def import_oaipmh(payload: dict) -> dict:
    """
    One inbound pipe message: payload is {"config": {...}, "run_id": ...}.
    Records go to storage as they are harvested; the returned status says
    where, and carries the failure if the run did not complete.
    """
    run_id = payload.get('run_id') or activity.info().workflow_id
    pipe = StoragePipe(payload.get('config', {}), run_id=run_id)
    await handle_pipe(pipe)
    return pipe.status()
