import sys

from bazaar import create_app
from bazaar.services.reports import export_settlements

# Create an app instance
app = create_app()

# Target file: first argument, or a CSV in the instance folder
path = sys.argv[1] if len(sys.argv) > 1 else f"{app.instance_path}/settlements_export.csv"

with app.app_context():
    rows = export_settlements(path)
    print(f"{rows} settlement rows have been exported to {path}")
