# Importing each module registers its tables on Base.metadata
from app.modules.directory import models as directory_models  # noqa: F401
from app.modules.schedules import models as schedules_models  # noqa: F401
from app.modules.appointments import models as appointments_models  # noqa: F401
from app.modules.notifications import models as notifications_models  # noqa: F401
from app.modules.audit import models as audit_models  # noqa: F401
from app.modules.events import outbox  # noqa: F401
