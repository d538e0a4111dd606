"""Fleet duty package.

Driver attendance, trip scheduling, availability dashboards and
preference-driven push notifications, organized by feature modules with
service/repository layers.
"""
