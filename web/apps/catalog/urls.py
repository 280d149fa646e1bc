from django.urls import path

from .views import (
    CategoryCollectionView,
    CategoryDetailView,
    ProductCollectionView,
    ProductDetailView,
    RestockView,
    SubcategoryListView,
)

app_name = "catalog"

urlpatterns = [
    path("", ProductCollectionView.as_view(), name="products-collection"),
    path("categories/", CategoryCollectionView.as_view(), name="categories-collection"),
    path("categories/<int:pk>/", CategoryDetailView.as_view(), name="categories-detail"),
    path("categories/<int:pk>/subcategories/", SubcategoryListView.as_view(), name="categories-subcategories"),
    path("<int:pk>/", ProductDetailView.as_view(), name="products-detail"),
    path("<int:pk>/restock/", RestockView.as_view(), name="products-restock"),
]
