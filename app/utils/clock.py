# app/utils/clock.py
from datetime import date, datetime


def today():
    return date.today()


def now():
    return datetime.now()
