"""Basic batch comparison example using the built-in DI container."""

import json

from sales_batch.core.config import DashboardConfig
from sales_batch.core.container import DIContainer


def main() -> None:
    config = DashboardConfig.from_env()
    with DIContainer.create_service(config=config) as service:
        response = service.handle_batch_request(
            {
                "current_periods": [
                    {
                        "key": "week_1",
                        "label": "Week 1",
                        "start_date": "2024-03-04",
                        "end_date": "2024-03-10",
                    }
                ],
                "previous_periods": [
                    {
                        "key": "week_1",
                        "label": "Week 1",
                        "start_date": "2024-02-05",
                        "end_date": "2024-02-11",
                    }
                ],
            }
        )
        print(json.dumps(response, indent=2))

        outcome, status = service.compare_month()
        print("Month to date:", outcome.metadata.current_total, f"({status.value})")
        for branch in service.compare_branches(outcome):
            print(branch.branch, branch.percent_change)


if __name__ == "__main__":
    main()
