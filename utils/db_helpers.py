from __future__ import annotations


def ensure_students_table(db) -> None:
    cur = db.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS students (
            id INT AUTO_INCREMENT PRIMARY KEY,
            name VARCHAR(150) NOT NULL,
            phone VARCHAR(32) NOT NULL,
            batch ENUM('morning','evening') NOT NULL DEFAULT 'morning',
            join_date DATE NOT NULL,
            status ENUM('active','inactive') NOT NULL DEFAULT 'active',
            monthly_fee DECIMAL(10,2) NOT NULL DEFAULT 3000.00,
            teacher VARCHAR(150) NULL,
            created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
            INDEX idx_students_teacher (teacher)
        ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;
        """
    )
    db.commit()


def ensure_finances_table(db) -> None:
    cur = db.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS finances (
            id INT AUTO_INCREMENT PRIMARY KEY,
            transaction_date DATE NOT NULL,
            category VARCHAR(80) NOT NULL,
            type ENUM('income','expense') NOT NULL,
            amount DECIMAL(12,2) NOT NULL,
            status ENUM('paid','pending') NOT NULL DEFAULT 'paid',
            description VARCHAR(255) NULL,
            note TEXT NULL,
            student_id INT NULL,
            created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
            INDEX idx_finances_date (transaction_date),
            INDEX idx_finances_student (student_id),
            CONSTRAINT fk_finances_student FOREIGN KEY (student_id)
                REFERENCES students(id) ON DELETE SET NULL
        ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;
        """
    )
    db.commit()


def ensure_attendance_table(db) -> None:
    cur = db.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS attendance (
            id INT AUTO_INCREMENT PRIMARY KEY,
            student_id INT NOT NULL,
            student_name VARCHAR(150) NULL,
            batch ENUM('morning','evening') NULL,
            teacher VARCHAR(150) NULL,
            attendance_date DATE NOT NULL,
            status ENUM('present','absent') NOT NULL,
            note VARCHAR(255) NULL,
            created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
            UNIQUE KEY uq_attendance_student_date (student_id, attendance_date),
            INDEX idx_attendance_date (attendance_date),
            CONSTRAINT fk_attendance_student FOREIGN KEY (student_id)
                REFERENCES students(id) ON DELETE CASCADE
        ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;
        """
    )
    db.commit()


def ensure_user_tables(db) -> None:
    cur = db.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS app_users (
            id CHAR(36) PRIMARY KEY,
            email VARCHAR(255) NOT NULL UNIQUE,
            password_hash VARCHAR(255) NOT NULL,
            created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
        ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS app_user_roles (
            user_id CHAR(36) PRIMARY KEY,
            role VARCHAR(32) NULL,
            assigned_teachers TEXT NULL,
            CONSTRAINT fk_roles_user FOREIGN KEY (user_id)
                REFERENCES app_users(id) ON DELETE CASCADE
        ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;
        """
    )
    db.commit()


def ensure_business_profile_table(db) -> None:
    cur = db.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS business_profile (
            id TINYINT PRIMARY KEY,
            business_name VARCHAR(150) NOT NULL DEFAULT '',
            owner_name VARCHAR(150) NOT NULL DEFAULT '',
            phone VARCHAR(32) NOT NULL DEFAULT '',
            address VARCHAR(255) NOT NULL DEFAULT ''
        ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;
        """
    )
    db.commit()


def ensure_announcements_table(db) -> None:
    cur = db.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS announcements (
            id INT AUTO_INCREMENT PRIMARY KEY,
            title VARCHAR(200) NOT NULL,
            message TEXT NOT NULL,
            announcement_date DATE NOT NULL,
            created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
            INDEX idx_announcements_date (announcement_date)
        ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;
        """
    )
    db.commit()


def ensure_schema(db) -> None:
    ensure_students_table(db)
    ensure_finances_table(db)
    ensure_attendance_table(db)
    ensure_user_tables(db)
    ensure_business_profile_table(db)
    ensure_announcements_table(db)
