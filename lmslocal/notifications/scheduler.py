"""
Background Scheduler for Pick Reminders.

Every REMINDER_INTERVAL_MINUTES, reminds players without a pick in rounds
that lock within the next REMINDER_WINDOW_HOURS. Each round is reminded
once.
"""

import schedule
import time
from datetime import datetime
from typing import Optional

from ..config import get_settings
from ..storage import get_database
from .service import NotificationService


def send_reminders(service: NotificationService) -> None:
    """Background job to send due reminders."""
    print(f"[{datetime.now()}] Checking for rounds due a reminder...")
    try:
        count = service.send_due_reminders()
        print(f"[{datetime.now()}] Reminder check complete: {count} round(s) reminded")
    except Exception as e:
        print(f"[{datetime.now()}] Error during reminder check: {e}")


def main(service: Optional[NotificationService] = None):
    """Main entry point for scheduler."""
    settings = get_settings()
    service = service or NotificationService(get_database())

    print("=" * 50)
    print("LMSLocal - Pick Reminder Scheduler")
    print("=" * 50)

    print("\n[*] Running initial reminder check...")
    send_reminders(service)

    interval = settings.REMINDER_INTERVAL_MINUTES
    schedule.every(interval).minutes.do(send_reminders, service)
    print(f"\n[*] Scheduled to run every {interval} minutes")
    print("[*] Press Ctrl+C to stop\n")

    try:
        while True:
            schedule.run_pending()
            time.sleep(60)
    finally:
        service.shutdown(wait=True)


if __name__ == '__main__':
    main()
