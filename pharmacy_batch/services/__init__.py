from pharmacy_batch.services.scheduler import InventoryScheduler, ScheduledJobInfo

__all__ = ["InventoryScheduler", "ScheduledJobInfo"]
