"""
URL configuration for hostelara project.

Every app exposes a small JSON API under its own prefix.
"""
from django.urls import path, include

urlpatterns = [
    # Rooms
    path('boarding/', include(('boarding.urls', 'boarding'), namespace='boarding')),

    # Students and checkout settlement
    path('students/', include(('students.urls', 'students'), namespace='students')),

    # Ledger, balances and statements
    path('ledger/', include(('ledger.urls', 'ledger'), namespace='ledger')),

    # Invoices, payments and discounts
    path('fees/', include(('fees.urls', 'fees'), namespace='fees')),
]
