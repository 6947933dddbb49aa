from pet_reminders.main import main

if __name__ == "__main__":
    main()
