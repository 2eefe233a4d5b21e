from quickcrop.app import main

main()
