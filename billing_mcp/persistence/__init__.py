"""Database engine creation and the base ORM model."""