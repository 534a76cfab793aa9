from typing import Annotated

from fastapi import Depends

from jobdesk.config import Settings, get_settings
from jobdesk.core.scheduler import get_job_scheduler
from jobdesk.scheduling.service import JobScheduler

# Type aliases for dependency injection
AppSettings = Annotated[Settings, Depends(get_settings)]
Scheduler = Annotated[JobScheduler, Depends(get_job_scheduler)]
