# Roles as carried in users.role (lowercase)

ADMIN = "admin"
STORE_KEEPER = "store_keeper"
SITE_ENGINEER = "site_engineer"
PURCHASE = "purchase"
PROJECT_MANAGER = "project_manager"
PROJECT_DIRECTOR = "project_director"
