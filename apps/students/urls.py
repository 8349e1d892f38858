# students/urls.py

from django.urls import path
from . import views

app_name = 'students'

urlpatterns = [
    path('', views.student_list, name='student_list'),
    path('create/', views.student_create, name='student_create'),
    path('<uuid:student_id>/', views.student_detail, name='student_detail'),
    path('<uuid:student_id>/checkout/', views.student_checkout, name='student_checkout'),
]
