# boarding/urls.py

from django.urls import path
from . import views

app_name = 'boarding'

urlpatterns = [
    path('rooms/', views.room_list, name='room_list'),
    path('rooms/create/', views.room_create, name='room_create'),
    path('rooms/<uuid:room_id>/assign/', views.room_assign, name='room_assign'),
]
