"""Reports domain - Timesheets and workload metrics"""
